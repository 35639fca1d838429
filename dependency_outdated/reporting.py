"""
Report assembly and rendering.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional

import pandas as pd

from .config import Options
from .models import ComparisonRow, Missing, Resolved, Status
from .versioning import Version


logger = logging.getLogger(__name__)

COLUMNS = ["Name", "Project", "Compat", "Latest", "Kind", "Platform"]
UP_TO_DATE_MESSAGE = "All dependencies are up to date, yay!"

HIDDEN_BY_DEFAULT = frozenset({Status.UP_TO_DATE, Status.ADDED})
FINDINGS = frozenset({
    Status.COMPATIBLE_UPDATE,
    Status.LATEST_ONLY,
    Status.REMOVED,
    Status.UNKNOWN,
})


@dataclass
class MemberReport:
    """Rows for one comparison unit."""

    name: str
    rows: List[ComparisonRow] = field(default_factory=list)
    workspace_mode: bool = False
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    statuses: FrozenSet[Status] = frozenset()

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class Report:
    members: List[MemberReport]
    exit_code: int = 0


def row_label(row: ComparisonRow, root: str) -> str:
    if row.parent == root:
        return row.name
    return f"{row.parent}->{row.name}"


def format_project(value: Resolved) -> str:
    if value is Missing.UNKNOWN:
        return "unknown"
    if value is Missing.ABSENT:
        return "---"
    return str(value)


def format_update(value: Resolved, pinned: Resolved) -> str:
    """Render a compatible or latest version relative to the pinned one."""
    if value is Missing.UNKNOWN:
        return "unknown"
    if value is Missing.ABSENT:
        return "Removed"
    if isinstance(pinned, Version) and value == pinned:
        return "---"
    return str(value)


def record(row: ComparisonRow, root: str) -> Dict[str, str]:
    return {
        "Name": row_label(row, root),
        "Project": format_project(row.pinned),
        "Compat": format_update(row.compatible, row.pinned),
        "Latest": format_update(row.latest, row.pinned),
        "Kind": row.kind.value,
        "Platform": row.platform or "---",
    }


def visible_rows(rows: Iterable[ComparisonRow], root: str, verbose: bool) -> List[ComparisonRow]:
    """Sort by rendered name, drop rows that render identically, hide unchanged rows."""
    seen = set()
    visible = []
    ordered = sorted(rows, key=lambda row: (row_label(row, root), row.key.sort_key()))
    for row in ordered:
        if row.status in HIDDEN_BY_DEFAULT and not verbose and not row.diagnostics:
            continue
        rendered = tuple(record(row, root).values())
        if rendered in seen:
            continue
        seen.add(rendered)
        visible.append(row)
    return visible


def assemble_member(
    name: str,
    rows: Iterable[ComparisonRow],
    options: Options,
    workspace_mode: bool = False,
    warnings: Iterable[str] = (),
) -> MemberReport:
    rows = list(rows)
    member = MemberReport(
        name=name,
        rows=visible_rows(rows, name, options.verbose > 0),
        workspace_mode=workspace_mode,
        warnings=list(warnings),
        statuses=frozenset(row.status for row in rows),
    )
    for row in member.rows:
        member.warnings.extend(row.diagnostics)
    return member


def compute_exit_code(members: Iterable[MemberReport], options: Options) -> int:
    """The configured exit code when anything in scope is out of date, else 0.

    Hidden rows count too: visibility only affects rendering.
    """
    counted = FINDINGS | ({Status.ADDED} if options.added_affects_exit_code else set())
    for member in members:
        if member.statuses & counted:
            return options.exit_code
    return 0


def assemble_report(members: List[MemberReport], options: Options) -> Report:
    return Report(members=members, exit_code=compute_exit_code(members, options))


def member_frame(member: MemberReport) -> pd.DataFrame:
    return pd.DataFrame(
        [record(row, member.name) for row in member.rows],
        columns=COLUMNS,
    )


def _table(frame: pd.DataFrame) -> str:
    underline = pd.DataFrame([{column: "-" * len(column) for column in COLUMNS}])
    table = pd.concat([underline, frame], ignore_index=True)
    formatters = {}
    for column in COLUMNS:
        width = max(len(column), *(len(value) for value in table[column]))
        formatters[column] = lambda value, width=width: f"{value:<{width}}"
    return table.to_string(index=False, justify="left", formatters=formatters)


def render_list(report: Report) -> str:
    sections = []
    for member in report.members:
        lines = []
        if member.workspace_mode:
            lines += [member.name, "=" * 16]
        if member.failed:
            lines.append(f"error: {member.error}")
        elif member.rows:
            lines.append(_table(member_frame(member)))
        elif not member.workspace_mode:
            lines.append(UP_TO_DATE_MESSAGE)
        elif not member.warnings:
            continue
        lines += [f"warning: {message}" for message in member.warnings]
        sections.append("\n".join(lines))
    return "\n\n".join(sections) + "\n" if sections else ""


def render_json(report: Report) -> str:
    documents = []
    for member in report.members:
        dependencies = []
        for row in member.rows:
            values = record(row, member.name)
            dependencies.append({
                "name": values["Name"],
                "project": values["Project"],
                "compat": values["Compat"],
                "latest": values["Latest"],
                "kind": row.kind.value,
                "platform": row.platform,
                "status": row.status.value,
            })
        document = {"crate_name": member.name, "dependencies": dependencies}
        if member.warnings:
            document["warnings"] = member.warnings
        if member.failed:
            document["error"] = member.error
        documents.append(json.dumps(document, sort_keys=True))
    return "\n".join(documents) + "\n" if documents else ""


def render_csv(report: Report) -> str:
    frames = []
    for member in report.members:
        frame = member_frame(member)
        frame.insert(0, "Member", member.name)
        frame["Status"] = [row.status.value for row in member.rows]
        frames.append(frame)
    if not frames:
        return ""
    return pd.concat(frames, ignore_index=True).to_csv(index=False)


def render(report: Report, fmt: str = "list") -> str:
    if fmt == "json":
        return render_json(report)
    if fmt == "csv":
        return render_csv(report)
    return render_list(report)
