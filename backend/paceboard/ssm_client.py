"""HTTP client for the ScreenshotMonitor time-tracking API."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Callable, Dict, List, Optional, Union

import requests

from .config import DEFAULT_SSM_BASE_URL

logger = logging.getLogger(__name__)

EmploymentId = Union[str, int]

COMMON_DATA_PATH = "/GetCommonData"
REPORT_PATH = "/GetReport"

COMMON_DATA_LOG_LIMIT = 500
REPORT_LOG_LIMIT = 2000


class UpstreamError(RuntimeError):
    """Raised when the time-tracking API cannot deliver usable data."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _truncate(text: str, limit: int) -> str:
    return text[:limit]


def _usable_id(value: Any) -> Optional[EmploymentId]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if isinstance(value, int):
        return value if value != 0 else None
    return None


def _id_from_record(record: Any) -> Optional[EmploymentId]:
    if not isinstance(record, dict):
        return None
    return _usable_id(record.get("id")) or _usable_id(record.get("employmentId"))


def _pick_employment(employments: List[Any]) -> Any:
    for record in employments:
        if isinstance(record, dict) and not record.get("isArchived"):
            return record
    return employments[0]


def _employment_candidates(common_data: Dict[str, Any]) -> List[Any]:
    employments = common_data.get("employments")
    if isinstance(employments, list) and employments:
        return employments
    nested = common_data.get("data")
    if isinstance(nested, dict):
        nested_list = nested.get("employments")
        if isinstance(nested_list, list) and nested_list:
            return nested_list
    single = common_data.get("employment")
    if isinstance(single, dict):
        return [single]
    return []


def extract_employment_id(common_data: Dict[str, Any]) -> Optional[EmploymentId]:
    """Find the employment identifier in a GetCommonData payload.

    The top-level ``employmentId`` wins. Otherwise the first non-archived
    employment record is used, looking at ``employments``, then
    ``data.employments``, then a singular ``employment`` record.
    """
    top_level = _usable_id(common_data.get("employmentId"))
    if top_level is not None:
        return top_level
    employments = _employment_candidates(common_data)
    if not employments:
        return None
    return _id_from_record(_pick_employment(employments))


class ScreenshotMonitorClient:
    """Wraps the two upstream calls used to compute online minutes."""

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_SSM_BASE_URL,
        timeout: float = 15,
        verify_tls: bool = False,
        session: Any = None,
    ) -> None:
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.verify_tls = verify_tls
        self._http = session if session is not None else requests

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _headers(self, with_body: bool = False) -> Dict[str, str]:
        headers = {"X-SSM-Token": self.token, "Accept": "application/json"}
        if with_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _request(self, method: str, path: str, *, log_limit: int, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        kwargs.setdefault("timeout", self.timeout)
        kwargs.setdefault("verify", self.verify_tls)
        kwargs.setdefault("headers", self._headers(with_body="json" in kwargs))
        logger.info("SSM request %s %s", method, url)
        try:
            response = self._http.request(method, url, **kwargs)
        except requests.RequestException as exc:
            logger.error("SSM request %s %s failed: %s", method, url, exc)
            raise UpstreamError(f"{method} {path} failed: {exc}") from exc
        logger.info(
            "SSM response %s %s: %s",
            method,
            url,
            _truncate(response.text or "", log_limit),
            extra={"status": response.status_code},
        )
        return response

    @staticmethod
    def _json(response: requests.Response, path: str) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError(
                f"{path} returned a non-JSON body", status_code=response.status_code
            ) from exc
        if not isinstance(data, dict):
            raise UpstreamError(
                f"{path} returned an unexpected payload", status_code=response.status_code
            )
        return data

    # ------------------------------------------------------------------
    # Account data
    # ------------------------------------------------------------------
    def get_common_data(self) -> Dict[str, Any]:
        response = self._request("GET", COMMON_DATA_PATH, log_limit=COMMON_DATA_LOG_LIMIT)
        if response.status_code >= 400:
            logger.info("SSM GetCommonData GET failed, retrying with POST")
            response = self._request("POST", COMMON_DATA_PATH, log_limit=COMMON_DATA_LOG_LIMIT)
        if response.status_code >= 400:
            raise UpstreamError(
                f"GetCommonData failed. Status: {response.status_code}",
                status_code=response.status_code,
            )
        return self._json(response, COMMON_DATA_PATH)

    def resolve_employment_id(self) -> EmploymentId:
        common_data = self.get_common_data()
        employment_id = extract_employment_id(common_data)
        if employment_id is None:
            logger.error(
                "SSM: no employmentId found in %s",
                _truncate(repr(common_data), COMMON_DATA_LOG_LIMIT),
            )
            raise UpstreamError("Could not find employmentId.")
        logger.info("SSM: found employmentId", extra={"employment_id": employment_id})
        return employment_id

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------
    def fetch_report(
        self,
        employment_id: EmploymentId,
        from_date: dt.date,
        to_date: dt.date,
    ) -> Dict[str, Any]:
        payload = {
            "employmentId": employment_id,
            "from": from_date.isoformat(),
            "to": to_date.isoformat(),
        }
        logger.info(
            "SSM: requesting report",
            extra={
                "employment_id": employment_id,
                "from_date": payload["from"],
                "to_date": payload["to"],
            },
        )
        response = self._request("POST", REPORT_PATH, log_limit=REPORT_LOG_LIMIT, json=payload)
        if response.status_code >= 400:
            raise UpstreamError(
                f"GetReport failed. Status: {response.status_code}",
                status_code=response.status_code,
            )
        return self._json(response, REPORT_PATH)


ClientFactory = Callable[[str], ScreenshotMonitorClient]


def client_factory_from_settings(settings: Any, session: Any = None) -> ClientFactory:
    def _factory(token: str) -> ScreenshotMonitorClient:
        return ScreenshotMonitorClient(
            token,
            base_url=settings.ssm_base_url,
            timeout=settings.ssm_timeout_seconds,
            verify_tls=settings.ssm_verify_tls,
            session=session,
        )

    return _factory


__all__ = [
    "ClientFactory",
    "EmploymentId",
    "ScreenshotMonitorClient",
    "UpstreamError",
    "client_factory_from_settings",
    "extract_employment_id",
]
