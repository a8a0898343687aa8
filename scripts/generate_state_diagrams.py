"""
Generate Mermaid diagrams from the NDR and ride transition tables.

Usage:
    python scripts/generate_state_diagrams.py                  # print to stdout
    python scripts/generate_state_diagrams.py --write FILE     # write a markdown file
    python scripts/generate_state_diagrams.py --check FILE     # fail if FILE is stale (CI)
"""
import argparse
import sys
from enum import Enum
from pathlib import Path
from typing import Mapping, Sequence

# project root on the path so `app` imports without installing
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.db.models.ndr import NDRStatus
from app.db.models.ride import RideStatus
from app.state_machine.states import NDR_TRANSITIONS, RIDE_TRANSITIONS, terminal_states

NDR_LABELS: dict[str, str] = {
    NDRStatus.PENDING.value: "Pending (scheduled)",
    NDRStatus.ACTIVE.value: "Active (operating)",
    NDRStatus.COMPLETED.value: "Completed",
    NDRStatus.ARCHIVED.value: "Archived",
}

NDR_EDGE_LABELS: dict[tuple[str, str], str] = {
    (NDRStatus.PENDING.value, NDRStatus.ACTIVE.value): "activate",
    (NDRStatus.ACTIVE.value, NDRStatus.COMPLETED.value): "end",
    (NDRStatus.COMPLETED.value, NDRStatus.ARCHIVED.value): "archive",
    (NDRStatus.ARCHIVED.value, NDRStatus.ACTIVE.value): "reactivate",
}

RIDE_LABELS: dict[str, str] = {
    RideStatus.PENDING.value: "Waiting for a car",
    RideStatus.ACTIVE.value: "Car assigned",
    RideStatus.COMPLETED.value: "Completed",
    RideStatus.CANCELLED.value: "Cancelled",
    RideStatus.TERMINATED.value: "Terminated",
}

RIDE_EDGE_LABELS: dict[tuple[str, str], str] = {
    (RideStatus.PENDING.value, RideStatus.ACTIVE.value): "assign car",
    (RideStatus.ACTIVE.value, RideStatus.PENDING.value): "unassign car",
    (RideStatus.ACTIVE.value, RideStatus.COMPLETED.value): "drop off",
}

DOCUMENT_TITLE = "# State diagrams\n\nGenerated by `scripts/generate_state_diagrams.py`; do not edit by hand.\n"


def generate_mermaid_from_transitions(
    transitions: Mapping[Enum, Sequence[Enum]],
    labels: dict[str, str],
    initial: Enum,
    edge_labels: dict[tuple[str, str], str] | None = None,
) -> str:
    """
    stateDiagram-v2 source for a transition table.

    Terminal states (no outgoing transitions) get an edge to [*].
    """
    edge_labels = edge_labels or {}
    lines: list[str] = ["stateDiagram-v2"]

    all_states: set[str] = set()
    for source, targets in transitions.items():
        all_states.add(source.value)
        all_states.update(target.value for target in targets)

    for state_value in sorted(all_states):
        lines.append(f"    {state_value} : {labels.get(state_value, state_value)}")

    lines.append("")
    lines.append(f"    [*] --> {initial.value}")

    for source, targets in transitions.items():
        for target in targets:
            edge = f"    {source.value} --> {target.value}"
            label = edge_labels.get((source.value, target.value))
            lines.append(f"{edge} : {label}" if label else edge)

    for state in terminal_states(transitions):
        lines.append(f"    {state.value} --> [*]")

    return "\n".join(lines)


def generate_all_diagrams() -> dict[str, str]:
    return {
        "Night duty run (NDRStatus)": generate_mermaid_from_transitions(
            NDR_TRANSITIONS, NDR_LABELS, NDRStatus.PENDING, NDR_EDGE_LABELS,
        ),
        "Ride (RideStatus)": generate_mermaid_from_transitions(
            RIDE_TRANSITIONS, RIDE_LABELS, RideStatus.PENDING, RIDE_EDGE_LABELS,
        ),
    }


def format_diagrams_as_markdown(diagrams: dict[str, str]) -> str:
    sections: list[str] = [DOCUMENT_TITLE]
    for name, mermaid_code in diagrams.items():
        sections.append(f"## {name}\n")
        sections.append(f"```mermaid\n{mermaid_code}\n```\n")
    return "\n".join(sections)


def check_diagrams_file(path: Path, markdown_content: str) -> bool:
    """True when the file exists and matches the generated markdown"""
    if not path.exists():
        print(f"error: {path} does not exist")
        return False
    if path.read_text(encoding="utf-8") == markdown_content:
        print("state diagrams are up to date")
        return True
    print(f"error: {path} is out of date with the transition tables")
    print(f"run: python scripts/generate_state_diagrams.py --write {path}")
    return False


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate Mermaid state diagrams")
    parser.add_argument("--write", type=Path, help="write the diagrams to this markdown file")
    parser.add_argument("--check", type=Path, help="verify this markdown file is up to date")
    args = parser.parse_args()

    markdown = format_diagrams_as_markdown(generate_all_diagrams())

    if args.check:
        sys.exit(0 if check_diagrams_file(args.check, markdown) else 1)
    elif args.write:
        args.write.write_text(markdown, encoding="utf-8")
        print(f"wrote {args.write}")
    else:
        print(markdown)


if __name__ == "__main__":
    main()
