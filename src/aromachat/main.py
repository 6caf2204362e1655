"""
AromaChat - CLI Entry Point.

Usage:
    aromachat wizard             Run the recipe wizard in the terminal
    aromachat serve              Start the API server
    aromachat health             Check configuration
    aromachat storage info       Inspect saved wizard progress
    aromachat --help             Show help
"""

import asyncio
import logging

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.spinner import Spinner
from rich.table import Table

app = typer.Typer(
    name="aromachat",
    help="AromaChat - essential-oil recipe assistant.",
    add_completion=False,
)
storage_app = typer.Typer(help="Manage saved wizard progress.")
app.add_typer(storage_app, name="storage")

console = Console()
logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    from aromachat.config import settings

    logging.basicConfig(
        level="DEBUG" if debug else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _open_storage():
    from aromachat.config import settings
    from create_recipe.storage import FileBackend, RecipeStorage

    return RecipeStorage(FileBackend(settings.storage_path.expanduser()))


# =============================================================================
# Wizard
# =============================================================================


def _resolve_language(language: str | None) -> str:
    """Map --language (an API value such as EN_US, or a short code such as en) to the API value."""
    from aromachat.config import settings
    from create_recipe.steps import LANGUAGE_OPTIONS

    if not language:
        return settings.user_language
    wanted = language.strip()
    for option in LANGUAGE_OPTIONS:
        if wanted.upper() == option["value"] or wanted.lower() == option["code"]:
            return option["value"]
    choices = ", ".join(f"{o['value']} ({o['code']})" for o in LANGUAGE_OPTIONS)
    raise typer.BadParameter(f"Unsupported language '{language}'. Choose one of: {choices}")


def _attach_monitor(store, debug: bool):
    """Record every store change while debugging. Returns the monitor, or None."""
    from aromachat.config import settings
    from create_recipe.monitor import StateChangeMonitor

    if not debug and settings.log_level != "DEBUG":
        return None
    monitor = StateChangeMonitor(store_name="wizard")
    monitor.attach(store)
    return monitor


def _pick(prompt: str, options: list[dict]) -> str:
    values = [o["value"] for o in options]
    for i, option in enumerate(options, 1):
        console.print(f"  [cyan]{i}[/cyan]. {option['label']}")
    while True:
        raw = console.input(f"[bold blue]{prompt}:[/bold blue] ").strip()
        if raw.isdigit() and 1 <= int(raw) <= len(options):
            return values[int(raw) - 1]
        if raw in values:
            return raw
        console.print("[red]Pick one of the listed options.[/red]")


def _pick_many(title: str, items: tuple, label) -> list:
    table = Table(title=title, show_lines=False)
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Why")
    for i, item in enumerate(items, 1):
        name, detail = label(item)
        table.add_row(str(i), name, detail)
    console.print(table)

    raw = console.input("[bold blue]Select (e.g. 1,3,4):[/bold blue] ")
    picked = []
    for part in raw.replace(" ", "").split(","):
        if part.isdigit() and 1 <= int(part) <= len(items):
            item = items[int(part) - 1]
            if item not in picked:
                picked.append(item)
    return picked


def _show_oils(oils) -> None:
    for suggestion in oils:
        table = Table(title=suggestion.property_name, title_justify="left")
        table.add_column("Oil", style="bold green")
        table.add_column("Relevancy", justify="center")
        table.add_column("Notes")
        for oil in suggestion.suggested_oils:
            table.add_row(oil.name_local_language or oil.name_english, "★" * oil.relevancy, oil.oil_description)
        console.print(table)


async def _run_wizard(resume: bool, mode: str, language: str, debug: bool = False) -> None:
    from aromachat.config import settings
    from create_recipe import (
        RecipeApiClient,
        RecipeApiError,
        RecipeStep,
        RecipeStore,
        WizardController,
        WizardPersistence,
    )
    from create_recipe.steps import AGE_CATEGORY_OPTIONS, ERROR_MESSAGES, GENDER_OPTIONS, LOADING_MESSAGES
    from create_recipe.webhook import RetryPolicy

    store = RecipeStore()
    monitor = _attach_monitor(store, debug)
    storage = _open_storage()
    persistence = WizardPersistence(
        store, storage, mode=mode or settings.persistence_mode, emergency_storage=storage
    )
    completed = False
    if resume and persistence.restore_state():
        console.print(f"[dim]Resumed saved progress at step '{store.state.current_step.value}'.[/dim]")
    persistence.start()

    retry = RetryPolicy(
        max_attempts=settings.api_max_attempts,
        base_delay=settings.api_retry_delay_seconds,
        multiplier=settings.api_backoff_multiplier,
    )
    async def with_spinner(message: str, coro):
        with Live(Spinner("dots", text=message), console=console, transient=True):
            return await coro

    try:
        async with RecipeApiClient(
            settings.internal_api_url,
            retry=retry,
            timeout=settings.api_timeout_seconds,
            user_language=language,
        ) as api:
            wizard = WizardController(store, api, language)

            while True:
                step = store.state.current_step
                info = wizard.navigator.step_info
                console.rule(f"Step {info.current.step_number}: {info.current.title}")

                try:
                    if step == RecipeStep.HEALTH_CONCERN:
                        text = console.input("[bold blue]Describe your health concern:[/bold blue] ")
                        result = wizard.submit_health_concern(text)

                    elif step == RecipeStep.DEMOGRAPHICS:
                        gender = _pick("Gender", GENDER_OPTIONS)
                        category = _pick("Age category", AGE_CATEGORY_OPTIONS)
                        age = typer.prompt("Age", type=int)
                        result = wizard.submit_demographics(gender, category, age)

                    elif step == RecipeStep.CAUSES:
                        causes = store.state.potential_causes or await with_spinner(
                            LOADING_MESSAGES["causes"], wizard.load_potential_causes()
                        )
                        picked = _pick_many("Potential causes", causes, lambda c: (c.cause_name, c.explanation))
                        result = wizard.select_causes(picked)

                    elif step == RecipeStep.SYMPTOMS:
                        symptoms = store.state.potential_symptoms or await with_spinner(
                            LOADING_MESSAGES["symptoms"], wizard.load_potential_symptoms()
                        )
                        picked = _pick_many("Symptoms", symptoms, lambda s: (s.symptom_name, s.explanation))
                        result = wizard.select_symptoms(picked)

                    else:
                        properties = await with_spinner(
                            LOADING_MESSAGES["properties"], wizard.load_therapeutic_properties()
                        )
                        for prop in properties:
                            console.print(f"  • [bold]{prop.property_name}[/bold] {prop.description}")
                        oils = await with_spinner(LOADING_MESSAGES["oils"], wizard.load_suggested_oils())
                        _show_oils(oils)
                        console.print("\n[green]Wizard complete.[/green]")
                        completed = True
                        break

                    if not result.is_valid:
                        for error in result.errors:
                            console.print(f"[red]{error}[/red]")

                except RecipeApiError as e:
                    console.print(f"\n[red]{ERROR_MESSAGES.get(e.code, ERROR_MESSAGES['API_ERROR'])}[/red]")
                    if not typer.confirm("Try again?", default=True):
                        break
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n\n[dim]Wizard interrupted. Progress saved; resume with --resume.[/dim]")
        persistence.on_before_unload()
    except Exception:
        logger.exception("Wizard failed")
        console.print(f"\n[red]{ERROR_MESSAGES['GENERIC_ERROR']}[/red]")
    finally:
        await persistence.stop()
        if completed:
            persistence.clear_persisted_data()
        persistence.close()
        if monitor is not None:
            logger.debug(f"Wizard state changes: {monitor.summary()}")


@app.command()
def wizard(
    resume: bool = typer.Option(False, "--resume", "-r", help="Continue from saved progress"),
    mode: str = typer.Option("", "--mode", "-m", help="Persistence mode: aggressive, balanced or conservative"),
    language: str = typer.Option(None, "--language", help="Response language (PT_BR, EN_US, ES_ES, FR_FR)"),
    debug: bool = typer.Option(False, "--debug", help="Debug logging and state change monitoring"),
) -> None:
    """Run the recipe wizard in the terminal."""
    language = _resolve_language(language)
    _configure_logging(debug)
    console.print(
        Panel.fit(
            "[bold green]AromaChat Recipe Wizard[/bold green]\n"
            "Answer a few questions to get essential-oil suggestions.\n\n"
            "[dim]Press Ctrl+C to stop; progress is saved.[/dim]",
            title="Welcome",
            border_style="green",
        )
    )
    try:
        asyncio.run(_run_wizard(resume, mode, language, debug))
    except KeyboardInterrupt:
        raise typer.Exit(130)


# =============================================================================
# Server
# =============================================================================


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
    log_prompts: bool = typer.Option(False, "--log-prompts", "-l", help="Log all LLM prompts to prompt_logs/"),
) -> None:
    """Start the AromaChat API server."""
    import uvicorn

    from aromachat.config import settings
    from aromachat.llm.prompt_logger import enable_prompt_logging

    _configure_logging()
    if log_prompts or settings.aromachat_log_prompts:
        enable_prompt_logging(True)
        console.print("[dim]📝 Prompt logging enabled. Check prompt_logs/ for LLM calls.[/dim]")

    uvicorn.run("aromachat.web.app:app", host=host, port=port, reload=reload, log_level=settings.log_level.lower())


@app.command()
def health() -> None:
    """Check system health and configuration."""
    from aromachat.config import get_settings

    console.print("\n[bold]AromaChat Health Check[/bold]\n")

    try:
        settings = get_settings()
        console.print("✅ Configuration loaded")
        console.print(f"   Environment: {settings.aromachat_env}")
        console.print(f"   Log level: {settings.log_level}")

        if settings.create_recipe_apikey and settings.create_recipe_base_url:
            console.print("✅ Recipe webhook configured")
        else:
            console.print("❌ Recipe webhook missing (CREATE_RECIPE_APIKEY / CREATE_RECIPE_BASE_URL)")

        if settings.openai_api_key and settings.openai_api_key.startswith("sk-"):
            console.print("✅ OpenAI API key configured")
        elif settings.openai_api_key:
            console.print("⚠️  OpenAI API key may be invalid")
        else:
            console.print("ℹ️  OpenAI API key not set, /api/recipe-wizard disabled")

        console.print(f"   Wizard API: {settings.internal_api_url}")
        console.print(f"   Storage: {settings.storage_path.expanduser()}")

    except Exception as e:
        console.print(f"\n[red]❌ Configuration error: {e}[/red]")
        console.print("[dim]Make sure you have a .env file with required variables.[/dim]")
        raise typer.Exit(1)


@app.command()
def ping() -> None:
    """Check that the wizard API answers."""
    from aromachat.config import settings
    from create_recipe import RecipeApiClient

    async def _check() -> bool:
        async with RecipeApiClient(settings.internal_api_url, timeout=settings.api_timeout_seconds) as api:
            return await api.check_api_health()

    if asyncio.run(_check()):
        console.print(f"✅ {settings.internal_api_url} is reachable")
    else:
        console.print(f"[red]❌ {settings.internal_api_url} is not reachable[/red]")
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    from aromachat import __version__

    console.print(f"AromaChat version {__version__}")


# =============================================================================
# Storage
# =============================================================================


@storage_app.command("info")
def storage_info() -> None:
    """Show saved keys and their age."""
    storage = _open_storage()
    info = storage.get_storage_info()

    console.print(f"\n[bold]Saved items:[/bold] {info['total_keys']} ({info['total_size']} bytes)")
    for key in storage.get_keys():
        console.print(f"  • {key}")
    if info["oldest_item"]:
        console.print(f"[dim]Oldest: {info['oldest_item']:%Y-%m-%d %H:%M}  Newest: {info['newest_item']:%Y-%m-%d %H:%M}[/dim]")


@storage_app.command("cleanup")
def storage_cleanup() -> None:
    """Remove expired entries."""
    removed = _open_storage().cleanup_expired()
    console.print(f"Removed {removed} expired item(s)")


@storage_app.command("clear")
def storage_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete all saved wizard progress."""
    if not yes and not typer.confirm("Delete all saved wizard progress?"):
        raise typer.Abort()
    if _open_storage().clear_all():
        console.print("Saved progress cleared")
    else:
        console.print("[red]Could not clear saved progress[/red]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
