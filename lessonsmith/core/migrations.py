from __future__ import annotations

from pathlib import Path
from typing import Any

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import MetaData

REPO_ROOT = Path(__file__).resolve().parents[2]


def include_object(object: Any, name: str, type_: str, reflected: bool, compare_to: Any) -> bool:
  """Keep autogenerate from proposing drops for objects the ORM does not declare."""
  if type_ in {"table", "column"} and reflected and compare_to is None:
    return False
  return True


def build_migration_context_options(*, target_metadata: MetaData) -> dict[str, Any]:
  """Alembic context options shared by online and offline runs."""
  return {
    "compare_type": True,
    "compare_server_default": True,
    "include_schemas": False,
    "transaction_per_migration": True,
    "include_object": include_object,
    "target_metadata": target_metadata,
  }


def load_alembic_config(root: Path = REPO_ROOT) -> Config:
  """Alembic config with an absolute script location so it works from any cwd."""
  config = Config(str(root / "alembic.ini"))
  config.set_main_option("script_location", str(root / "alembic"))
  return config


def migration_heads(config: Config | None = None) -> list[str]:
  script = ScriptDirectory.from_config(config or load_alembic_config())
  return list(script.get_heads())
