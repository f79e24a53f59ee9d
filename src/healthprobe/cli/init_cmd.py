"""``healthprobe init``: scaffold a new scenario file from a template."""

from __future__ import annotations

from pathlib import Path
from string import Template

import typer
from rich.console import Console

console = Console(stderr=True)

_SCENARIO_TEMPLATE = Template('''\
"""Health scenario: $name.

Run with:
    healthprobe run $filename --stage 10s:2 --stage 20s:2 --stage 10s:0
"""

from __future__ import annotations

import asyncio

from healthprobe import HttpClient, check, group_path, registry, scenario, setup, task

errors = registry.rate("errors")


@scenario(
    name="$name",
    stages=[("10s", 2), ("20s", 2), ("10s", 0)],
    thresholds={"http_req_duration": "p(95)<500", "errors": "rate<0.01"},
)
class $class_name:
    """$name health scenario."""

    @setup
    async def context(self) -> dict[str, str]:
        return {"api_url": "http://localhost:8080"}

    @task()
    async def liveness(self, client: HttpClient, context: dict[str, str]) -> None:
        resp = await client.get(f"{context['api_url']}/q/health/live", name="Liveness Check")
        ok = check(
            resp,
            {"status is 200": lambda r: r.status == 200},
            group=group_path("$name", "Liveness Check"),
        )
        errors.add(not ok)
        await asyncio.sleep(1)
''')


def init_cmd(
    name: str = typer.Argument(
        "my_scenario",
        help="Name for the scenario (used as filename and class name).",
    ),
) -> None:
    """Scaffold a new scenario file in the current directory."""
    # Sanitise the name for use as a Python identifier
    safe_name = "".join(c if c.isalnum() or c == "_" else "_" for c in name).lower()
    if not safe_name or safe_name[0].isdigit():
        safe_name = "scenario_" + safe_name

    filename = f"{safe_name}.py"
    class_name = "".join(word.capitalize() for word in safe_name.split("_")) + "Scenario"
    display_name = name.replace("_", " ").replace("-", " ").title()

    target = Path.cwd() / filename
    if target.exists():
        console.print(f"[red]File already exists:[/red] {filename}")
        raise typer.Exit(code=1)

    content = _SCENARIO_TEMPLATE.substitute(
        name=display_name,
        filename=filename,
        class_name=class_name,
    )
    target.write_text(content)
    console.print(f"[green]Created scenario:[/green] {filename}")
