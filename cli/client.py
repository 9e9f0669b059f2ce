from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the sensmap service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def submit_report(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/reports", json=payload)

    def undo_last(self) -> Dict[str, Any]:
        return self._request("POST", "/reports/undo")

    def delete_report(self, cell_key: str, report_id: int) -> None:
        self._request("DELETE", f"/cells/{cell_key}/reports/{report_id}")

    def list_cells(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/cells")

    def get_profile(self) -> Dict[str, Any]:
        return self._request("GET", "/profile")

    def update_profile(self, profile: Dict[str, int]) -> Dict[str, Any]:
        return self._request("PUT", "/profile", json=profile)

    def calculate_route(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/routes", json=payload)

    def compact(self) -> Dict[str, Any]:
        return self._request("POST", "/maintenance/compact")

    def _request(self, method: str, url: str, json: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = self._client.request(method, url, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.RequestError as exc:
            typer.secho(f"Could not reach {self._config.base_url}: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
