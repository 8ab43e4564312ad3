"""Tools for flashing, registering and reporting on freshly provisioned cards."""

from __future__ import annotations

import datetime
import subprocess
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import requests

APPLET_AID = "A0000008200003"
DEFAULT_GP_JAR = "../bin/globalplatformpro/gp.jar"
_TABLE_HEADER = ("status", "time elapsed", "reader ID", "cardID", "error (if any)")
_TABLE_PADDING = 2


class ProvisioningError(Exception):
    """Raised when a provisioning step fails."""


@dataclass
class ProvisioningReport:
    """The outcome of provisioning the card in one reader."""

    reader_identifier: str
    card_id: str
    completion_time: datetime.datetime
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


def register_card(card_id: str, api_key: str, url: str) -> str:
    """Register ``card_id`` with the address service at ``url`` and return its reply."""
    try:
        response = requests.post(
            url,
            json={"id": card_id},
            headers={"api-key": api_key, "Content-Type": "application/json"},
            timeout=30.0,
        )
    except requests.RequestException as exc:
        raise ProvisioningError(f"error registering card {card_id}: {exc}") from exc
    return response.text


def _format_duration(delta: datetime.timedelta) -> str:
    return f"{delta.total_seconds():.3f}s"


def format_report_table(reports: Iterable[ProvisioningReport], start_time: datetime.datetime) -> str:
    """Render reports as a column-aligned table with "|" column separators."""
    rows: List[Sequence[str]] = [_TABLE_HEADER]
    for report in reports:
        rows.append(
            (
                "success" if report.succeeded else "failure",
                _format_duration(report.completion_time - start_time),
                report.reader_identifier,
                report.card_id,
                "" if report.error is None else str(report.error),
            )
        )
    widths = [max(len(row[column]) for row in rows) + _TABLE_PADDING for column in range(len(_TABLE_HEADER))]
    return "".join(
        "".join(cell.ljust(width) + "|" for cell, width in zip(row, widths)) + "\n" for row in rows
    )


class GlobalPlatformTool:
    """Runs the external card management tools against a named reader."""

    def __init__(
        self,
        java_path: str = "java",
        gp_jar_path: str = DEFAULT_GP_JAR,
        opensc_tool: str = "opensc-tool",
    ):
        self.java_path = java_path
        self.gp_jar_path = gp_jar_path
        self.opensc_tool = opensc_tool

    def _run(self, command: List[str], action: str, reader_name: str) -> str:
        try:
            completed = subprocess.run(command, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or exc.stdout or "").strip() or f"exit status {exc.returncode}"
            raise ProvisioningError(f"error {action} on reader {reader_name}: {detail}") from exc
        except OSError as exc:
            raise ProvisioningError(f"error {action} on reader {reader_name}: {exc}") from exc
        return completed.stdout

    def _gp(self, reader_name: str, *args: str) -> List[str]:
        return [self.java_path, "-jar", self.gp_jar_path, "--reader", reader_name, *args]

    def unlock(self, reader_name: str, isd_unlock_code: str) -> str:
        """Send the manufacturer ISD unlock APDU to the card."""
        return self._run(
            [self.opensc_tool, "-r", reader_name, "-s", isd_unlock_code], "unlocking card", reader_name
        )

    def delete_applet(self, reader_name: str) -> str:
        """Delete a previously installed phonon applet."""
        return self._run(self._gp(reader_name, "--delete", APPLET_AID), "deleting applet", reader_name)

    def install_applet(self, reader_name: str, cap_file: str) -> str:
        """Install the applet from ``cap_file``."""
        return self._run(
            self._gp(reader_name, "--install", cap_file, "--applet", APPLET_AID, "--package", APPLET_AID),
            "installing applet",
            reader_name,
        )

    def reader_info(self, reader_name: str) -> str:
        """Query reader information, which also makes the reader's light blink."""
        return self._run(self._gp(reader_name, "-info"), "reading info", reader_name)