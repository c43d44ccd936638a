"""
Reel Flow Main Module - command line entry points.

Loads a flow document (JSON as exported by the builder) and either
describes it or plays it in the console with a real ReelSession, so
navigation overrides, gamification effects, points and analytics can be
checked without the viewing page.

CLI Usage:
    $ python -m reel_flow inspect flow.json
    $ python -m reel_flow play flow.json --visit-id demo --analytics-url http://localhost:5000
    $ python -m reel_flow collector --port 5000
"""
from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Callable, Optional

import click
from pydantic import ValidationError

from .config import RuntimeSettings
from .engine.analytics import AnalyticsBatchQueue
from .engine.effects import Effect, default_effects
from .engine.navigation import MoveKind, NavigationDecision
from .engine.session import ReelSession
from .models.flow import ElementType, Flow, Slide
from .models.gamification import FlowGamificationSettings, GamificationEvent

__all__ = ["cli", "load_flow", "run_cli"]

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


# =============================================================================
# PROGRESS INDICATORS
# =============================================================================

class ProgressIndicator:
    """Helper class for console messages."""

    ICONS = {
        "slide": "[Slide]",
        "effect": "[Effect]",
        "points": "[Points]",
        "link": "[Link]",
        "success": "[OK]",
        "error": "[ERROR]",
        "warning": "[WARN]",
        "info": "[INFO]",
    }

    def __init__(self, verbose: bool = True, callback: Optional[Callable] = None):
        """
        Initialize progress indicator.

        Args:
            verbose: Whether to print messages.
            callback: Optional callback for custom handling.
        """
        self.verbose = verbose
        self.callback = callback

    def update(self, stage: str, message: str) -> None:
        icon = self.ICONS.get(stage, "•")

        if self.verbose:
            click.echo(f"{icon} {message}")

        if self.callback:
            self.callback(stage, message)

        logger.debug(message)

    def success(self, message: str) -> None:
        self.update("success", message)

    def error(self, message: str) -> None:
        self.update("error", message)

    def warning(self, message: str) -> None:
        self.update("warning", message)


# =============================================================================
# FLOW LOADING
# =============================================================================

def load_flow(path: str) -> Flow:
    """
    Read and validate a flow document.

    Accepts either the flow object itself or ``{"flow": {...}}``.

    Raises:
        ValueError: If the file is not JSON or not a valid flow.
    """
    try:
        document = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"{path} is not valid JSON: {e}") from e

    if isinstance(document, dict) and isinstance(document.get("flow"), dict):
        document = document["flow"]

    try:
        return Flow.model_validate(document)
    except ValidationError as e:
        raise ValueError(f"{path} is not a valid flow: {e}") from e


def _load_or_exit(path: str) -> Flow:
    try:
        return load_flow(path)
    except ValueError as e:
        click.echo(click.style(f"[ERROR] {e}", fg="red"))
        sys.exit(1)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _banner(title: str, color: str = "blue") -> None:
    click.echo()
    click.echo(click.style("=" * 50, fg=color))
    click.echo(click.style(f"  {title}", fg=color, bold=True))
    click.echo(click.style("=" * 50, fg=color))
    click.echo()


# =============================================================================
# CLI INTERFACE
# =============================================================================

@click.group()
@click.version_option(version=VERSION, prog_name="reel-flow")
def cli():
    """
    Reel Flow - runtime core for quiz/presentation flows.

    Inspect flow documents and play them in the console with the same
    navigation, gamification, points and analytics rules as the viewer.
    """
    pass


@cli.command()
@click.argument("flow_path", metavar="FLOW", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Exit with status 1 when logic-next references are dangling.",
)
def inspect(flow_path: str, strict: bool):
    """
    Describe a flow: slides, elements and navigation overrides.

    Example:

        $ python -m reel_flow inspect flow.json --strict
    """
    flow = _load_or_exit(flow_path)
    dangling = {(slide_id, key) for slide_id, key, _ in flow.dangling_references()}

    click.echo(click.style(f"Flow: {flow.name or flow.id} ({len(flow.slides)} slides)", bold=True))
    gamification = "on" if FlowGamificationSettings.from_flow(flow).enabled else "off"
    click.echo(f"Gamification: {gamification}")
    click.echo()

    for index, slide in enumerate(flow.slides):
        title = f" - {slide.question}" if slide.question else ""
        lock = " [locked]" if slide.locked_by_background else ""
        click.echo(click.style(f"{index + 1}. {slide.id}{title}{lock}", fg="cyan"))

        for option in slide.options:
            click.echo(f"     option {option.id}: {option.label}")
        for element in slide.elements:
            flags = []
            if element.lock_slide:
                flags.append("lockSlide")
            if element.multiple_selection:
                flags.append("multiple")
            suffix = f" ({', '.join(flags)})" if flags else ""
            click.echo(f"     element {element.id} [{element.element_type}]{suffix}")
            for item in element.items:
                action = f" -> {item.action_type.value}" if item.has_action else ""
                click.echo(f"       item {item.id}{action}")

        _echo_logic(slide, dangling)

    click.echo()
    if dangling:
        click.echo(click.style(f"[WARN] {len(dangling)} dangling reference(s) fall back to sequential", fg="yellow"))
        if strict:
            sys.exit(1)
    else:
        click.echo(click.style("[OK] All navigation references resolve", fg="green"))


def _echo_logic(slide: Slide, dangling: set[tuple[str, str]]) -> None:
    logic = slide.logic_next
    entries = [*logic.options.items(), *logic.elements.items()]
    if logic.default_next:
        entries.append(("defaultNext", logic.default_next))

    for key, target in entries:
        line = f"     next[{key}] -> {target}"
        if (slide.id, key) in dangling:
            click.echo(click.style(f"{line} (dangling)", fg="red"))
        else:
            click.echo(line)


@cli.command()
@click.argument("flow_path", metavar="FLOW", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--visit-id",
    default=None,
    help="Visit id to report analytics under (no analytics without one).",
)
@click.option(
    "--analytics-url",
    default=None,
    help="Collector base URL (default: REEL_ANALYTICS_URL or http://localhost:5000).",
)
@click.option(
    "--max-steps",
    type=int,
    default=200,
    help="Maximum interactions before stopping (default: 200).",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    default=False,
    help="Show debug logging.",
)
def play(flow_path: str, visit_id: Optional[str], analytics_url: Optional[str], max_steps: int, verbose: bool):
    """
    Play a flow in the console.

    Example:

        $ python -m reel_flow play flow.json

        $ python -m reel_flow play flow.json --visit-id demo --analytics-url http://localhost:5000
    """
    _configure_logging(verbose)
    flow = _load_or_exit(flow_path)
    if not flow.slides:
        click.echo(click.style("[ERROR] Flow has no slides", fg="red"))
        sys.exit(1)

    progress = ProgressIndicator(verbose=True)
    analytics = None
    if visit_id:
        settings = RuntimeSettings.from_env()
        if analytics_url:
            settings = settings.model_copy(update={"analytics_base_url": analytics_url})
        analytics = AnalyticsBatchQueue.from_settings(settings)

    session = ReelSession(
        flow,
        visit_id=visit_id,
        analytics=analytics,
        effects=_console_effects(flow, progress),
    )

    _banner(f"PLAYING {flow.name or flow.id}")

    try:
        session.start()
        steps = 0
        while not session.finished and steps < max_steps:
            steps += 1
            if not _play_step(session, progress):
                break
    except KeyboardInterrupt:
        click.echo()
        click.echo(click.style("Interrupted by user", fg="yellow"))
    finally:
        delivered = session.close()

    summary = session.summary()
    _banner("RESULTS")
    status = "finished" if summary["finished"] else f"stopped on {summary['current_slide']}"
    click.echo(f"Flow {status}")
    click.echo(f"Points: {click.style(str(summary['total_points']), fg='yellow', bold=True)}")
    click.echo(f"Slides visited: {summary['visited']}")
    if analytics is not None:
        click.echo(f"Analytics events delivered on close: {delivered}")


def _console_effects(flow: Flow, progress: ProgressIndicator) -> list[Effect]:
    effects = default_effects(flow)
    for effect in effects:
        effect.on_fire = _effect_reporter(effect.name, progress)
    return effects


def _effect_reporter(name: str, progress: ProgressIndicator) -> Callable[[GamificationEvent], None]:
    def report(event: GamificationEvent) -> None:
        if name == "points_progress":
            progress.update("points", f"Total: {event.payload.get('total', 0)}")
        else:
            progress.update("effect", f"{name} ({event.kind.value} on {event.element_id})")
    return report


def _play_step(session: ReelSession, progress: ProgressIndicator) -> bool:
    """Show the current slide, run one picked action. False to stop."""
    slide = session.current_slide
    progress.update("slide", f"{session.current_index + 1}/{len(session.flow.slides)} {slide.question or slide.id}")

    actions = _slide_actions(session, slide)
    for number, (label, _) in enumerate(actions, start=1):
        click.echo(f"  {number}) {label}")

    choice = click.prompt("Choose", type=click.IntRange(1, len(actions)))
    label, run = actions[choice - 1]
    if run is None:
        return False

    _report_decision(run(), progress)
    return True


def _slide_actions(session: ReelSession, slide: Slide) -> list[tuple[str, Optional[Callable[[], NavigationDecision]]]]:
    actions: list[tuple[str, Optional[Callable[[], NavigationDecision]]]] = []

    for option in slide.options:
        actions.append((f"{option.emoji or ''}{option.label or option.id}", lambda o=option.id: session.select_option(o)))

    for element in slide.elements:
        if element.is_type(ElementType.QUESTIONNAIRE, ElementType.QUESTION_GRID):
            selected = session.state.responses.get(element.id, [])
            for item in element.items:
                mark = "[x] " if item.id in selected else ""
                actions.append((
                    f"{mark}{item.label or item.id}",
                    lambda e=element.id, i=item.id: session.select_item(e, i),
                ))
        elif element.is_type(ElementType.BUTTON):
            text = element.ui_config.get("text") or element.id
            actions.append((f"[button] {text}", lambda e=element.id: session.click_button(e)))
        elif element.is_type(ElementType.FORM):
            actions.append((f"[form] submit {element.id}", lambda e=element.id: session.submit_form(e, {})))

    locked = " (locked)" if session.is_current_slide_locked() else ""
    actions.append((f"Continue{locked}", lambda: session.continue_()))
    actions.append(("Quit", None))
    return actions


def _report_decision(decision: NavigationDecision, progress: ProgressIndicator) -> None:
    if decision.kind == MoveKind.OPEN_URL:
        tab = "new tab" if decision.open_in_new_tab else "same tab"
        progress.update("link", f"Open {decision.url} ({tab})")
    elif decision.kind == MoveKind.JUMP:
        if decision.is_direct_jump:
            progress.update("info", f"Jump to {decision.target_slide_id}")
    elif decision.kind == MoveKind.END:
        progress.success("End of flow")


@cli.command()
@click.option(
    "-p", "--port",
    type=int,
    default=5000,
    help="Port to run on (default: 5000).",
)
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode.",
)
def collector(port: int, debug: bool):
    """
    Start the development analytics collector.

    Example:

        $ python -m reel_flow collector --port 8080 --debug
    """
    from .web.app import app

    _configure_logging(debug)
    _banner("REEL FLOW COLLECTOR", color="cyan")
    click.echo(click.style(f"  Endpoint: http://localhost:{port}/analytics/visit/<visit_id>/events", fg="cyan"))
    click.echo(click.style("  Press Ctrl+C to stop", fg="cyan"))
    click.echo()

    app.run(host='0.0.0.0', port=port, debug=debug, threaded=True)


@cli.command()
def version():
    """Show version information."""
    click.echo(f"Reel Flow v{VERSION}")
    click.echo("Runtime core for quiz/presentation flows")
    click.echo()
    click.echo("Modules:")
    click.echo("  - Navigation: logic-next overrides and slide locks")
    click.echo("  - Trigger Bus: gamification events")
    click.echo("  - Gamification: per-element effect opt-in")
    click.echo("  - Points: ledger and points policy")
    click.echo("  - Analytics: batched, retried event delivery")


def run_cli():
    """Entry point for CLI."""
    cli()


# =============================================================================
# MODULE ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    run_cli()
