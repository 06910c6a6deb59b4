"""Configuration via Pydantic settings."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

REPO_ROOT = Path(__file__).resolve().parent.parent.parent


class SquadkitConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SQUADKIT_", env_file=".env", extra="ignore")

    # Source catalog
    source_root: Path = REPO_ROOT

    # Target layout
    install_dir: str = ".claude"

    # Catalog shape
    core_agents: list[str] = [
        "pipeline-agent",
        "pm-agent",
        "ba-agent",
        "designer-agent",
        "architect-agent",
        "integration-agent",
        "qa-agent",
    ]
    utility_skills: list[str] = ["pipeline", "pipeline-status", "review"]
    role_prefixes: dict[str, str] = {"dev-": "dev", "devop-": "devops"}

    # Distribution filters
    excluded_scripts: list[str] = ["test-setup.sh", "update.sh"]
    excluded_script_dir_suffix: str = "-results"

    # Board sync
    token_placeholder: str = "${FIZZY_TOKEN}"
    board_sync_script: str = "scripts/fizzy-sync.sh"

    # CLI
    diff_preview_lines: int = 40

    def resolved_source_root(self) -> Path:
        return self.source_root.expanduser().resolve()

    def target_root(self, project_dir: Path) -> Path:
        return project_dir.expanduser() / self.install_dir
