"""Mermaid flowchart rendering for plan sessions."""

from typing import Any, Dict, List

STATUS_CLASSES = {
    "PENDING": "pending",
    "IN_PROGRESS": "inProgress",
    "COMPLETED": "completed",
    "FAILED": "failed",
    "SKIPPED": "skipped",
    "BLOCKED": "blocked",
}

CLASS_DEFS = [
    "classDef pending fill:#6b7280,stroke:#9ca3af",
    "classDef inProgress fill:#3b82f6,stroke:#60a5fa",
    "classDef completed fill:#22c55e,stroke:#4ade80",
    "classDef failed fill:#ef4444,stroke:#f87171",
    "classDef skipped fill:#a855f7,stroke:#c084fc",
    "classDef blocked fill:#f59e0b,stroke:#fbbf24",
]

MAX_LABEL_LENGTH = 50


def escape_label(text: str) -> str:
    """Make a step title safe inside a quoted mermaid node label."""
    escaped = (text or "").replace('"', "'").replace("[", "(").replace("]", ")")
    return escaped[:MAX_LABEL_LENGTH]


def status_class(status: str) -> str:
    return STATUS_CLASSES.get(status, "pending")


def render_flowchart(steps: List[Dict[str, Any]]) -> str:
    """
    Render plan steps as a top-down flowchart.

    Steps with ``depends_on`` get an edge from each dependency; steps without
    one are chained to the step before them.
    """
    steps = sorted(steps, key=lambda s: s["order"])
    by_order = {step["order"]: step for step in steps}

    lines = ["flowchart TD"]
    for step in steps:
        label = f'{step["order"]}. {escape_label(step["title"])}'
        lines.append(f'    {step["id"]}["{label}"]:::{status_class(step["status"])}')

    lines.append("")
    for step in steps:
        depends_on = step.get("depends_on") or []
        if depends_on:
            for dep_id in depends_on:
                lines.append(f'    {dep_id} --> {step["id"]}')
        elif step["order"] > 1:
            previous = by_order.get(step["order"] - 1)
            if previous:
                lines.append(f'    {previous["id"]} --> {step["id"]}')

    lines.append("")
    lines.extend(f"    {class_def}" for class_def in CLASS_DEFS)
    return "\n".join(lines) + "\n"
