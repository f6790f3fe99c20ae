"""Rich error messages for the kbcore CLI.

Every message states what went wrong and the exact action that fixes it.

Usage:
    from kbcore.cli.errors import err_no_db
    console.print(err_no_db(".kbcore.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from kbcore.llm_client import provider_of


def err_no_api_key(model: str) -> str:
    """No API key for the provider of *model*.

    Example:
        No API key for 'gemini'. Set:  export GEMINI_API_KEY=...
    """
    provider = provider_of(model)
    env_var = {
        "openai": "OPENAI_API_KEY",
        "anthropic": "ANTHROPIC_API_KEY",
        "cohere": "COHERE_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "google": "GOOGLE_API_KEY",
        "mistral": "MISTRAL_API_KEY",
        "azure": "AZURE_API_KEY",
    }.get(provider, f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}' (model {model}).\n"
        f"  Set:  export {env_var}=..."
    )


def err_no_db(db_path: str = ".kbcore.db") -> str:
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  kbcore init"
    )


def err_config(message: str) -> str:
    return f"[red]Config error:[/] {message}"


def err_file_not_found(path: str) -> str:
    return (
        f"[red]Error:[/] File not found: '{path}'\n"
        "  Check the path and try again."
    )


def err_source_not_found(source_id: str) -> str:
    return (
        f"[yellow]Source not found:[/] '{source_id}' is not in the knowledge base.\n"
        "  Run:  kbcore status  to see all sources."
    )


def err_ingest_failed(source_id: str, message: str) -> str:
    return (
        f"[red]✗ Ingestion failed[/] for '{source_id}':\n"
        f"  {message}\n"
        f"  Fix the cause, then run:  kbcore retry {source_id}"
    )


def err_search_unavailable(detail: str | None) -> str:
    lines = ["[red]Error:[/] Search unavailable."]
    if detail:
        lines.append(f"  Detail: {detail}")
    lines.append("  Run with --diagnose for the raw candidate list.")
    return "\n".join(lines)
