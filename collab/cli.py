"""Click CLI: orchestrates config loading, agent selection, the session, and output."""

import asyncio
import dataclasses
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from collab.coordinator import AGENT_STATUS, PHASE_CHANGE, SessionCoordinator
from collab.errors import CollabError, CostExceeded
from collab.executor import PhaseExecutor
from collab.healthcheck import run_health_checks
from collab.inbox import archive_file, ensure_dirs, parse_file, scan_inbox
from collab.models import Agent, CollabRequest, CritiqueStyle, Mode, ProgressEvent
from collab.output import print_result, print_trace, save_to_file
from collab.providers.anthropic import AnthropicProvider
from collab.providers.base import AIProvider
from collab.providers.deepseek import DeepSeekProvider
from collab.providers.gemini import GeminiProvider
from collab.providers.openai_provider import OpenAIProvider
from collab.providers.xai import XAIProvider
from config.config_loader import AppConfig, EngineConfig, load_config

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "google": GeminiProvider,
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "xai": XAIProvider,
    "deepseek": DeepSeekProvider,
}

_TERMINAL = {"done", "failed", "timed_out", "cancelled"}
_STATUS_MARK = {"done": "[green]OK[/green]", "failed": "[red]FAIL[/red]",
                "timed_out": "[yellow]TIMEOUT[/yellow]", "cancelled": "[dim]CANCELLED[/dim]"}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_all_providers(config: AppConfig) -> dict[str, AIProvider]:
    """Build all available providers. Returns dict keyed by name."""
    providers: dict[str, AIProvider] = {}
    for name in sorted(config.available_providers):
        model_cfg = config.models[name]
        if model_cfg.sdk not in PROVIDER_CLASSES:
            logger.warning("Provider '%s' uses unknown sdk '%s', skipping", name, model_cfg.sdk)
            continue
        try:
            providers[name] = PROVIDER_CLASSES[model_cfg.sdk](model_cfg)
        except Exception as exc:
            logger.warning("Failed to instantiate provider '%s': %s", name, exc)
    return providers


def _build_agents(config: AppConfig, providers: dict[str, AIProvider]) -> dict[str, Agent]:
    """Bind each provider to its model settings as an engine Agent."""
    agents: dict[str, Agent] = {}
    for name, provider in providers.items():
        cfg = config.models[name]
        agents[name] = Agent(
            provider_id=name,
            model_id=cfg.model,
            client=provider,
            timeout_sec=cfg.timeout_sec,
            max_tokens=cfg.max_tokens,
            input_price_per_mtok=cfg.input_price_per_mtok,
            output_price_per_mtok=cfg.output_price_per_mtok,
            context_chars=cfg.context_chars,
        )
    return agents


def _determine_agents(
    config: AppConfig,
    agents_arg: str | list[str] | None,
    full_flag: bool,
) -> tuple[list[str], str]:
    """Returns (agent_names, panel_mode). --agents overrides all."""
    if agents_arg:
        if isinstance(agents_arg, str):
            agents_arg = agents_arg.split(",")
        return [a.strip() for a in agents_arg if a.strip()], "custom"
    elif full_flag:
        return list(config.defaults.full_panel), "full"
    else:
        return list(config.defaults.default_panel), "default"


def _check_and_filter_agents(agent_pool: dict[str, Agent]) -> dict[str, Agent]:
    """Run health checks, print results, and ask user what to do on failures.

    Returns the filtered dict of working agents. Exits if the user
    declines to continue or no agent answers.
    """
    console.print("\n[bold]Pinging agents...[/bold]")
    results: dict[str, tuple[bool, str]] = asyncio.run(run_health_checks(agent_pool))

    failed_names: list[str] = []
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {name}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {short_err}")
            failed_names.append(name)

    if not failed_names:
        console.print()
        return agent_pool

    working = {n: a for n, a in agent_pool.items() if n not in failed_names}

    if not working:
        console.print("\n[bold red]Error:[/bold red] No agent answered the ping.")
        sys.exit(1)

    console.print(
        f"\n[yellow]{len(failed_names)} agent(s) unreachable:[/yellow] {', '.join(failed_names)}"
    )
    console.print(f"Reachable agents: {', '.join(sorted(working))}")

    if not click.confirm("Continue with the reachable agents only?", default=True):
        sys.exit(0)

    console.print()
    return working


async def _run_single(
    prompt: str,
    source: str,
    config: AppConfig,
    agents: dict[str, Agent],
    executor: PhaseExecutor,
    engine: EngineConfig,
    mode: str,
    agent_names: list[str],
    cost_cap: float | None,
    timeout_sec: float | None,
    style: str,
    output_dir: Path,
    slug_override: str | None = None,
    lead_agent: str | None = None,
) -> Path:
    """Run a single session and return the saved output path.

    Raises:
        CollabError: Invalid request, cost cap hit before any output, or abort.
    """
    selected = [n for n in agent_names if n in agents]
    skipped = [n for n in agent_names if n not in agents]
    if skipped:
        console.print(f"[yellow]Skipping unavailable agents:[/yellow] {', '.join(skipped)}")
    if lead_agent is not None and lead_agent not in selected:
        console.print(f"[yellow]Lead agent {lead_agent} is not on the panel, ignoring it[/yellow]")
        lead_agent = None

    request = CollabRequest(
        prompt=prompt,
        mode=mode,
        agents=selected,
        cost_cap_dollars=cost_cap,
        global_timeout_ms=int(timeout_sec * 1000) if timeout_sec is not None else None,
        critique_style=style,
        lead_agent=lead_agent,
    )

    console.print(f"\n[bold cyan]AI Collab[/bold cyan] {mode} with {len(selected)} agents")
    console.print(f"Agents: {', '.join(selected) or 'none'}")
    console.print(f"Prompt: [italic]{prompt[:80]}{'...' if len(prompt) > 80 else ''}[/italic]\n")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        session_task = progress.add_task("Starting session...", total=None)

        def publish(event: ProgressEvent) -> None:
            if event.type == PHASE_CHANGE and event.phase:
                progress.update(session_task, description=f"Phase {event.phase} ({event.message})")
            elif event.type == AGENT_STATUS and event.status in _TERMINAL:
                progress.print(f"{_STATUS_MARK[event.status]} {event.agent} {event.phase}")

        coordinator = SessionCoordinator(agents, config.prompts, executor=executor, engine=engine, publish=publish)
        result = await coordinator.run(request)

    print_trace(result)
    print_result(result)

    saved_path = save_to_file(result, prompt, output_dir, source=source, slug_override=slug_override)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")
    return saved_path


async def _run_inbox(
    config: AppConfig,
    agents: dict[str, Agent],
    executor: PhaseExecutor,
    engine: EngineConfig,
    inbox_dir: Path,
    archive_dir: Path,
    cli_overrides: dict,
    defaults: dict,
    output_dir: Path,
) -> None:
    """Process all .md files in the inbox folder.

    Precedence for per-file settings: CLI flag > frontmatter > config default.
    """
    ensure_dirs(inbox_dir, archive_dir)
    files = scan_inbox(inbox_dir)

    if not files:
        click.echo("No files in inbox.")
        return

    for file_path in files:
        try:
            prompt, meta = parse_file(file_path)
            settings = {**defaults, **meta, **{k: v for k, v in cli_overrides.items() if v is not None}}
            saved = await _run_single(
                prompt=prompt,
                source=str(file_path),
                config=config,
                agents=agents,
                executor=executor,
                engine=engine,
                mode=settings["mode"],
                agent_names=_determine_agents(config, settings["agents"], False)[0],
                cost_cap=settings["cost_cap"],
                timeout_sec=settings["timeout"],
                style=settings["style"],
                output_dir=output_dir,
                slug_override=file_path.stem,
                lead_agent=settings["lead"],
            )
            archived = archive_file(file_path, archive_dir)
            click.echo(f"Processed: {file_path.name} -> {saved} (archived: {archived.name})")
        except Exception as e:
            logger.error("Failed: %s -- %s", file_path.name, e)
            archive_file(file_path, archive_dir, failed=True)


@click.command()
@click.argument("prompt", required=False)
@click.option("--file", "prompt_file", type=click.Path(exists=True), help="Read prompt from .md file")
@click.option("--mode", default=None, type=click.Choice([m.value for m in Mode]),
              help="Collaboration protocol (default: from config)")
@click.option("--agents", default=None, help="Comma-separated agent list, overrides panel selection")
@click.option("--full", "use_full_panel", is_flag=True, help="Use every configured agent")
@click.option("--cost-cap", default=None, type=float, help="Cost cap in dollars (default: from config)")
@click.option("--timeout", default=None, type=float, help="Global session timeout in seconds")
@click.option("--style", default=None, type=click.Choice([s.value for s in CritiqueStyle]),
              help="Critique style for sequential_critique_chain")
@click.option("--quorum", default=None, type=int, help="Minimum responding agents for a completed result")
@click.option("--lead", "lead_agent", default=None, help="Agent that writes the round_table synthesis")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--inbox", "use_inbox", is_flag=True, default=False,
              help="Process all .md files in inbox folder")
@click.option("--inbox-dir", "inbox_dir_override", default=None,
              help="Override inbox folder path (default: from config)")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
def main(
    prompt: str | None,
    prompt_file: str | None,
    mode: str | None,
    agents: str | None,
    use_full_panel: bool,
    cost_cap: float | None,
    timeout: float | None,
    style: str | None,
    quorum: int | None,
    lead_agent: str | None,
    output_path: str | None,
    verbose: bool,
    use_inbox: bool,
    inbox_dir_override: str | None,
    skip_health_check: bool,
) -> None:
    """AI Collab -- pose one prompt to several models and get one reconciled answer.

    \b
    Examples:
      ai-collab "Should we use REST or GraphQL?"
      ai-collab "Name our product" --mode creative_brainstorm_swarm --full
      ai-collab "Explain TLS 1.3" --mode validated_consensus --agents claude,openai,gemini
      ai-collab "Review this plan" --mode sequential_critique_chain --style disagree
      ai-collab --file prompt.md --cost-cap 0.25 --timeout 30
      ai-collab --inbox --inbox-dir ./my_queue
    """
    # Model output may contain characters the Windows console encoding cannot render
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    engine = config.engine if quorum is None else dataclasses.replace(config.engine, quorum=quorum)
    effective_output = Path(output_path) if output_path else config.defaults.output_dir

    all_providers = _build_all_providers(config)

    if not all_providers:
        console.print("[bold red]Error:[/bold red] No providers available. Check API keys in .env.")
        sys.exit(1)

    agent_pool = _build_agents(config, all_providers)
    if not skip_health_check:
        agent_pool = _check_and_filter_agents(agent_pool)

    executor = PhaseExecutor(
        max_in_flight=engine.max_in_flight,
        max_retries=engine.max_retries,
        backoff_base_sec=engine.backoff_base_sec,
        backoff_max_sec=engine.backoff_max_sec,
    )

    if use_inbox:
        inbox_dir = Path(inbox_dir_override) if inbox_dir_override else config.inbox.inbox_dir
        default_names, _ = _determine_agents(config, None, use_full_panel)
        asyncio.run(
            _run_inbox(
                config=config,
                agents=agent_pool,
                executor=executor,
                engine=engine,
                inbox_dir=inbox_dir,
                archive_dir=config.inbox.archive_dir,
                cli_overrides={"mode": mode, "agents": agents, "cost_cap": cost_cap,
                               "timeout": timeout, "style": style, "lead": lead_agent},
                defaults={"mode": config.defaults.mode, "agents": default_names, "cost_cap": None,
                          "timeout": None, "style": engine.critique_style, "lead": None},
                output_dir=effective_output,
            )
        )
        return

    if prompt_file:
        prompt_text = Path(prompt_file).read_text(encoding="utf-8").strip()
        prompt_source = prompt_file
    elif prompt:
        prompt_text = prompt
        prompt_source = "cli"
    else:
        console.print("[bold red]Error:[/bold red] Provide a PROMPT argument, --file, or --inbox.")
        sys.exit(1)

    agent_names, _ = _determine_agents(config, agents, use_full_panel)

    try:
        asyncio.run(
            _run_single(
                prompt=prompt_text,
                source=prompt_source,
                config=config,
                agents=agent_pool,
                executor=executor,
                engine=engine,
                mode=mode or config.defaults.mode,
                agent_names=agent_names,
                cost_cap=cost_cap,
                timeout_sec=timeout,
                style=style or engine.critique_style,
                output_dir=effective_output,
                lead_agent=lead_agent,
            )
        )
    except CostExceeded as exc:
        console.print(f"[bold red]Cost cap reached:[/bold red] {exc}")
        sys.exit(2)
    except CollabError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
