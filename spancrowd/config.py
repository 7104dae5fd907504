"""Configuration for spancrowd."""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Final

#: The packaged crowd configuration file.
DEFAULT_CROWD_CONFIG: Final[Path] = Path(__file__).parent / "etc" / "crowd.json"
#: The default CrowdFlower API endpoint.
DEFAULT_CROWDFLOWER_URL: Final[str] = "https://api.crowdflower.com/v1"
#: The default number of votes a marker needs to be accepted.
DEFAULT_VOTES_NEEDED: Final[int] = 2


def get_app_data_path() -> Path:
    """
    Get the path to the application data directory.

    - On Windows, this is ``AppData/Local/spancrowd`` in the user's home.
    - On macOS, this is ``~/Library/Application Support/spancrowd``.
    - On Linux, this is ``~/.config/spancrowd``.
    - If the platform is not supported, raise a ValueError.

    Returns:
        Path to the application data directory

    """
    if sys.platform not in ["win32", "darwin", "linux"]:
        msg = f"Unsupported platform: {sys.platform}"
        raise ValueError(msg)
    if sys.platform == "win32":
        data_path = Path.home() / "AppData" / "Local" / "spancrowd"
    elif sys.platform == "darwin":
        data_path = Path.home() / "Library" / "Application Support" / "spancrowd"
    else:
        data_path = Path.home() / ".config" / "spancrowd"
    data_path.mkdir(parents=True, exist_ok=True)
    return data_path


@dataclass(frozen=True)
class LabelTable:
    """
    Immutable translation table between internal short label codes (``PER``,
    ``LOC``, ...) and the labels displayed to crowd workers.

    Several codes may share one display label (``ORG`` and ``ORGpart`` are
    both shown as "Organisation"), so the reverse direction is configured
    explicitly rather than derived.
    """

    #: Short code -> display label.
    to_display: MappingProxyType[str, str]
    #: Display label -> short code.
    to_code: MappingProxyType[str, str]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LabelTable:
        """
        Build a table from the ``labels`` section of the crowd config.

        Args:
            data: Dictionary with ``to_display`` and ``to_code`` mappings

        Returns:
            A new :class:`LabelTable`

        """
        return cls(
            to_display=MappingProxyType(dict(data.get("to_display", {}))),
            to_code=MappingProxyType(dict(data.get("to_code", {}))),
        )

    def display(self, code: str) -> str | None:
        """
        Get the display label for a short code.

        Args:
            code: The short code

        Returns:
            The display label, or None if the code is unknown

        """
        return self.to_display.get(code)

    def code(self, display: str) -> str | None:
        """
        Get the short code for a display label.

        Args:
            display: The display label

        Returns:
            The short code, or None if the label is unknown

        """
        return self.to_code.get(display)


@dataclass(frozen=True)
class TaskTexts:
    """Fixed explanation texts shown to crowd workers for gold items."""

    #: Reason shown for a gold sentence without any entity.
    no_entity_reason: str = "This text contains no named entities."
    #: Hints appended to the reason of a gold sentence with entities.
    entity_reason_hints: str = ""
    #: Reason shown for gold items of the classification stage.
    classification_reason: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskTexts:
        """
        Build the texts from the ``texts`` section of the crowd config.

        Args:
            data: Dictionary of texts

        Returns:
            A new :class:`TaskTexts`

        """
        return cls(
            no_entity_reason=data.get("no_entity_reason", cls.no_entity_reason),
            entity_reason_hints=data.get(
                "entity_reason_hints", cls.entity_reason_hints
            ),
            classification_reason=data.get(
                "classification_reason", cls.classification_reason
            ),
        )


@dataclass(frozen=True)
class CrowdConfig:
    """The contents of the crowd configuration file."""

    labels: LabelTable
    texts: TaskTexts
    #: Countries crowd workers may come from.
    allowed_countries: tuple[str, ...] = ()
    #: Result field holding the aggregated type of a classification judgment.
    classification_field: str = "entity_type"
    #: Template for the human facing URL of a job.
    job_url: str = "https://crowdflower.com/jobs/{job_id}/"

    @classmethod
    def load(cls, path: Path | None = None) -> CrowdConfig:
        """
        Load the crowd configuration from a JSON file.

        Keyword Args:
            path: Path to the file.  Defaults to the packaged ``etc/crowd.json``.

        Returns:
            A new :class:`CrowdConfig`

        """
        path = path or DEFAULT_CROWD_CONFIG
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return cls(
            labels=LabelTable.from_dict(data.get("labels", {})),
            texts=TaskTexts.from_dict(data.get("texts", {})),
            allowed_countries=tuple(data.get("allowed_countries", ())),
            classification_field=data.get(
                "classification_field", cls.classification_field
            ),
            job_url=data.get("job_url", cls.job_url),
        )


@dataclass(frozen=True)
class Settings:
    """Runtime settings, read from the environment."""

    #: Path to the SQLite database; None means the default location.
    db_path: Path | None = None
    #: Whether to log to the console as well.
    debug: bool = False
    #: The CrowdFlower API key.
    api_key: str | None = None
    #: The CrowdFlower API endpoint.
    base_url: str = DEFAULT_CROWDFLOWER_URL
    #: Number of votes a marker needs to be accepted.
    votes_needed: int = DEFAULT_VOTES_NEEDED
    #: Path to the crowd configuration file.
    crowd_config_path: Path = field(default=DEFAULT_CROWD_CONFIG)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Settings:
        """
        Read settings from environment variables.

        - ``SPANCROWD_DB_PATH``: database file
        - ``SPANCROWD_DEBUG``: log to the console too
        - ``CROWDFLOWER_API_KEY``: API key for the crowd provider
        - ``CROWDFLOWER_BASE_URL``: API endpoint for the crowd provider
        - ``SPANCROWD_VOTES_NEEDED``: votes needed to accept a marker
        - ``SPANCROWD_CROWD_CONFIG``: crowd configuration file

        Keyword Args:
            environ: Mapping to read from instead of :data:`os.environ`

        Returns:
            A new :class:`Settings`

        Raises:
            ValueError: If ``SPANCROWD_VOTES_NEEDED`` is not a positive integer

        """
        env = os.environ if environ is None else environ
        db_path = env.get("SPANCROWD_DB_PATH")
        crowd_config = env.get("SPANCROWD_CROWD_CONFIG")
        votes_needed = int(env.get("SPANCROWD_VOTES_NEEDED", DEFAULT_VOTES_NEEDED))
        if votes_needed < 1:
            msg = f"SPANCROWD_VOTES_NEEDED must be positive, got {votes_needed}"
            raise ValueError(msg)
        return cls(
            db_path=Path(db_path) if db_path else None,
            debug="SPANCROWD_DEBUG" in env,
            api_key=env.get("CROWDFLOWER_API_KEY"),
            base_url=env.get("CROWDFLOWER_BASE_URL", DEFAULT_CROWDFLOWER_URL),
            votes_needed=votes_needed,
            crowd_config_path=Path(crowd_config) if crowd_config else DEFAULT_CROWD_CONFIG,
        )

    def load_crowd_config(self) -> CrowdConfig:
        """
        Load the crowd configuration file these settings point to.

        Returns:
            The :class:`CrowdConfig`

        """
        return CrowdConfig.load(self.crowd_config_path)
