from __future__ import annotations

from pathlib import Path

import allure

from ralph_loop.orchestrator.backend.sandbox import (
    find_existing_sandbox,
    parse_sandbox_listing,
    sandbox_available,
)

pytestmark = [
    allure.epic("Ralph Loop"),
    allure.feature("Sandbox Probes"),
]


def test_parse_sandbox_listing_matches_workspace_column(tmp_path: Path) -> None:
    listing = (
        "SANDBOX ID     TEMPLATE                  NAME        WORKSPACE   STATUS\n"
        "aaa111         docker/claude-code        other       /elsewhere  running\n"
        f"bbb222         docker/claude-code        mine        {tmp_path.resolve()}  running\n"
    )

    assert parse_sandbox_listing(listing, tmp_path) == "bbb222"


def test_parse_sandbox_listing_ignores_header_and_short_rows(tmp_path: Path) -> None:
    listing = f"ID TEMPLATE NAME {tmp_path.resolve()}\nbroken row\n"

    assert parse_sandbox_listing(listing, tmp_path) is None


def test_probes_report_unavailable_docker(tmp_path: Path) -> None:
    missing = str(tmp_path / "no-docker")

    assert sandbox_available(missing) is False
    assert find_existing_sandbox(tmp_path, missing) is None
