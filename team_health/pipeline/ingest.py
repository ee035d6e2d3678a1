"""
Observation Ingestion

Source adapters that load already-normalized observations from memory,
exported files (JSON or CSV) or an HTTP endpoint.
"""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import httpx
import pandas as pd
from pydantic import ValidationError

from team_health.models.entities import (
    ChannelKind,
    InteractionCounts,
    ProfileSignals,
    ServiceObservation,
)
from team_health.pipeline.fetch import AdapterFetchError, SourceAdapter

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".json", ".csv")

# Flat CSV column -> interaction channel
COUNT_COLUMNS = {
    "dm_count": ChannelKind.DIRECT_MESSAGE,
    "group_count": ChannelKind.GROUP,
    "meeting_count": ChannelKind.MEETING,
    "email_count": ChannelKind.EMAIL,
    "file_share_count": ChannelKind.FILE_SHARE,
}

METADATA_PREFIX = "meta_"

TRUE_STRINGS = {"true", "yes", "y", "1", "t"}


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _clean_str(value: Any) -> Optional[str]:
    if _is_missing(value):
        return None
    return str(value).strip()


def _parse_bool(value: Any, default: bool = False) -> bool:
    if _is_missing(value):
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in TRUE_STRINGS


def _parse_int(value: Any) -> Optional[int]:
    if _is_missing(value):
        return None
    return int(float(value))


def _parse_timestamp(value: Any, formats: list[str] = None) -> Optional[datetime]:
    """Parse a timestamp with multiple format support."""
    if _is_missing(value):
        return None
    if isinstance(value, datetime):
        return value

    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass

    formats = formats or [
        "%Y-%m-%d %H:%M:%S",
        "%Y/%m/%d %H:%M:%S",
        "%Y/%m/%d",
        "%m/%d/%Y",
        "%d %b %Y",
    ]
    for fmt in formats:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    logger.warning(f"Could not parse timestamp: {text}")
    return None


def observation_from_record(
    record: dict[str, Any],
    source_id: str,
    source_type: str = "generic",
) -> ServiceObservation:
    """Validate one nested record (JSON / HTTP payload) into an observation.

    The adapter's source id always wins; the record may override the
    source type.
    """
    data = dict(record)
    data["source_id"] = source_id
    data.setdefault("source_type", source_type)
    if "local_id" not in data and "id" in data:
        data["local_id"] = str(data.pop("id"))
    local_id = data.get("local_id")
    if isinstance(local_id, int) and not isinstance(local_id, bool):
        data["local_id"] = str(local_id)
    return ServiceObservation.model_validate(data)


def observation_from_row(
    row: dict[str, Any],
    source_id: str,
    source_type: str = "generic",
) -> ServiceObservation:
    """Build an observation from one flat CSV row.

    Columns:
        local_id (required), email, display_name, avatar_url, source_type,
        last_activity, joined_at, observed_at, is_active,
        relationship_type, relationship_strength,
        activity_score, communication_score,
        dm_count, group_count, meeting_count, email_count, file_share_count,
        any ProfileSignals field (has_real_name, is_guest, role_count, ...),
        meta_<key> for metadata.
    """
    local_id = _clean_str(row.get("local_id"))
    if local_id is None:
        raise ValueError("missing local_id")

    profile_data = {}
    for name, field in ProfileSignals.model_fields.items():
        if name not in row or _is_missing(row[name]):
            continue
        if field.annotation is int:
            profile_data[name] = _parse_int(row[name])
        else:
            profile_data[name] = _parse_bool(row[name], default=field.default)

    counts = {
        kind.value: _parse_int(row.get(column)) or 0
        for column, kind in COUNT_COLUMNS.items()
    }

    metadata = {
        column[len(METADATA_PREFIX):]: value
        for column, value in row.items()
        if column.startswith(METADATA_PREFIX) and not _is_missing(value)
    }

    data: dict[str, Any] = {
        "source_id": source_id,
        "source_type": _clean_str(row.get("source_type")) or source_type,
        "local_id": local_id,
        "email": _clean_str(row.get("email")),
        "display_name": _clean_str(row.get("display_name")) or "",
        "avatar_url": _clean_str(row.get("avatar_url")),
        "profile": ProfileSignals(**profile_data),
        "last_activity": _parse_timestamp(row.get("last_activity")),
        "joined_at": _parse_timestamp(row.get("joined_at")),
        "is_active": _parse_bool(row.get("is_active"), default=True),
        "interactions": InteractionCounts(**counts),
        "activity_score": _parse_int(row.get("activity_score")),
        "communication_score": _parse_int(row.get("communication_score")),
        "relationship_strength": _parse_int(row.get("relationship_strength")) or 0,
        "metadata": metadata,
    }

    relationship_type = _clean_str(row.get("relationship_type"))
    if relationship_type:
        data["relationship_type"] = relationship_type.lower()

    observed_at = _parse_timestamp(row.get("observed_at"))
    if observed_at is not None:
        data["observed_at"] = observed_at

    return ServiceObservation(**data)


def _validate_records(
    records: list[Any],
    source_id: str,
    source_type: str,
) -> list[ServiceObservation]:
    observations = []
    for i, record in enumerate(records):
        if not isinstance(record, dict):
            logger.warning(f"{source_id}: skipping record {i}, expected an object")
            continue
        try:
            observations.append(observation_from_record(record, source_id, source_type))
        except ValidationError as e:
            logger.warning(f"{source_id}: skipping malformed record {i}: {e.error_count()} errors")
    return observations


def _unwrap_payload(payload: Any) -> list[Any]:
    """Accept either a bare list or {"observations": [...]}."""
    if isinstance(payload, dict):
        payload = payload.get("observations", [])
    if not isinstance(payload, list):
        raise ValueError("expected a list of observations")
    return payload


class StaticSourceAdapter(SourceAdapter):
    """Serves a fixed list of observations."""

    def __init__(
        self,
        source_id: str,
        observations: list[ServiceObservation],
        source_type: str = "generic",
    ):
        super().__init__(source_id=source_id, source_type=source_type)
        self.observations = list(observations)

    async def fetch(self, credentials: Optional[dict[str, Any]] = None) -> list[ServiceObservation]:
        return list(self.observations)


class FileSourceAdapter(SourceAdapter):
    """Loads observations from a JSON or CSV export file.

    The source id defaults to the file stem and is also used as the source
    type unless one is given, so `slack.csv` is scored with the slack
    strategy.
    """

    def __init__(
        self,
        path: str | Path,
        source_id: Optional[str] = None,
        source_type: Optional[str] = None,
    ):
        self.path = Path(path)
        source_id = source_id or self.path.stem
        super().__init__(source_id=source_id, source_type=source_type or source_id)

    def _load_json(self) -> list[ServiceObservation]:
        with open(self.path, encoding="utf-8") as f:
            payload = json.load(f)
        return _validate_records(_unwrap_payload(payload), self.source_id, self.source_type)

    def _load_csv(self) -> list[ServiceObservation]:
        df = pd.read_csv(self.path, dtype=str, keep_default_na=True)

        # Normalize column names
        df.columns = [col.strip().lower().replace(" ", "_") for col in df.columns]

        observations = []
        for index, row in df.iterrows():
            try:
                observations.append(observation_from_row(row.to_dict(), self.source_id, self.source_type))
            except ValueError as e:
                logger.warning(f"{self.source_id}: skipping malformed row {index}: {e}")
        return observations

    def load(self) -> list[ServiceObservation]:
        """Read the file synchronously.

        Raises:
            AdapterFetchError: If the file is missing, unsupported or unreadable
        """
        if not self.path.exists():
            raise AdapterFetchError(self.source_id, f"File not found: {self.path}")

        suffix = self.path.suffix.lower()
        try:
            if suffix == ".json":
                observations = self._load_json()
            elif suffix == ".csv":
                observations = self._load_csv()
            else:
                raise AdapterFetchError(self.source_id, f"Unsupported file type: {self.path.name}")
        except (OSError, ValueError, pd.errors.ParserError) as e:
            logger.error(f"Error loading observations from {self.path}: {e}")
            raise AdapterFetchError(self.source_id, f"Could not read {self.path.name}: {e}") from e

        logger.info(f"Loaded {len(observations)} observations from {self.path.name}")
        return observations

    async def fetch(self, credentials: Optional[dict[str, Any]] = None) -> list[ServiceObservation]:
        return await asyncio.to_thread(self.load)


class HttpSourceAdapter(SourceAdapter):
    """GETs a JSON list of observations from an HTTP endpoint.

    Credentials may carry a bearer `token`.
    """

    def __init__(
        self,
        source_id: str,
        url: str,
        source_type: str = "generic",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(source_id=source_id, source_type=source_type)
        self.url = url
        self.timeout = timeout
        self._client = client

    def _headers(self, credentials: Optional[dict[str, Any]]) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        token = (credentials or {}).get("token")
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _get(self, client: httpx.AsyncClient, headers: dict[str, str]) -> httpx.Response:
        response = await client.get(self.url, headers=headers)
        if response.status_code in (401, 403):
            raise AdapterFetchError(
                self.source_id,
                f"Insufficient permission for {self.url} (HTTP {response.status_code})",
            )
        response.raise_for_status()
        return response

    async def fetch(self, credentials: Optional[dict[str, Any]] = None) -> list[ServiceObservation]:
        headers = self._headers(credentials)

        try:
            if self._client is not None:
                response = await self._get(self._client, headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._get(client, headers)
            records = _unwrap_payload(response.json())

        except httpx.HTTPStatusError as e:
            logger.error(f"{self.source_id} HTTP error: {e}")
            raise AdapterFetchError(self.source_id, f"HTTP {e.response.status_code} from {self.url}") from e
        except httpx.HTTPError as e:
            logger.error(f"{self.source_id} HTTP error: {e}")
            raise AdapterFetchError(self.source_id, f"Failed to connect to {self.url}: {e}") from e
        except ValueError as e:
            raise AdapterFetchError(self.source_id, f"Invalid payload from {self.url}: {e}") from e

        observations = _validate_records(records, self.source_id, self.source_type)
        logger.info(f"Fetched {len(observations)} observations from {self.url}")
        return observations


def discover_file_adapters(directory: str | Path) -> list[FileSourceAdapter]:
    """Create one FileSourceAdapter per supported file, in filename order.

    Raises:
        FileNotFoundError: If the directory does not exist
    """
    directory = Path(directory)

    if not directory.exists():
        raise FileNotFoundError(f"Directory not found: {directory}")

    if directory.is_file():
        return [FileSourceAdapter(directory)]

    files = sorted(
        f for f in directory.iterdir()
        if f.is_file() and f.suffix.lower() in SUPPORTED_SUFFIXES
    )

    adapters = [FileSourceAdapter(f) for f in files]
    logger.info(f"Found {len(adapters)} observation files in {directory}")
    return adapters
