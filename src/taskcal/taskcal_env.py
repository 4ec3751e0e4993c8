from pathlib import Path
import os
import tomllib
from pydantic import BaseModel, Field, ValidationError
from typing import Optional
from jinja2 import Template


# ─── Config Schema ─────────────────────────────────────────────────
class UIConfig(BaseModel):
    theme: str = Field("dark", pattern="^(dark|light)$")
    show_completed: bool = True
    ampm: bool = False
    width: int = Field(24, ge=10, le=80)


class CalendarConfig(BaseModel):
    week_starts_monday: bool = True


class RecurrenceConfig(BaseModel):
    lookback_years: int = Field(1, ge=0)
    lookahead_years: int = Field(2, ge=1)


class TaskcalConfig(BaseModel):
    title: str = "Taskcal Configuration"
    ui: UIConfig = UIConfig()
    calendar: CalendarConfig = CalendarConfig()
    recurrence: RecurrenceConfig = RecurrenceConfig()


# ─── Commented Template ────────────────────────────────────
CONFIG_TEMPLATE = """\
title = "{{ title }}"

[ui]
# theme: str = 'dark' | 'light'
theme = "{{ ui.theme }}"

# show_completed: bool = true | false
# when false, finished occurrences are hidden from the week view
show_completed = {{ ui.show_completed | lower }}

# ampm: bool = true | false
ampm = {{ ui.ampm | lower }}

# width: int = 10 ... 80
# column width for each day in the week view
width = {{ ui.width }}

[calendar]
# week_starts_monday: bool = true | false
week_starts_monday = {{ calendar.week_starts_monday | lower }}

[recurrence]
# Repeating tasks that never end are only expanded inside a
# bounded range: occurrences earlier than "now - lookback_years"
# and later than "created + lookahead_years" are never shown.
# Both values are whole years.

lookback_years = {{ recurrence.lookback_years }}
lookahead_years = {{ recurrence.lookahead_years }}

"""

# ─── Save Config with Comments ───────────────────────────────


def render_config(config: TaskcalConfig) -> str:
    template = Template(CONFIG_TEMPLATE)
    return template.render(**config.model_dump()).strip() + "\n"


def save_config_from_template(config: TaskcalConfig, path: Path):
    path.write_text(render_config(config), encoding="utf-8")


# ─── Main Environment Class ───────────────────────────────


class TaskcalEnvironment:
    def __init__(self):
        self._home = self._resolve_home()
        self._config: Optional[TaskcalConfig] = None
        self.config_error: str | None = None

    @property
    def home(self) -> Path:
        return self._home

    @property
    def config_path(self) -> Path:
        return self.home / "config.toml"

    @property
    def db_path(self) -> Path:
        return self.home / "taskcal.db"

    def ensure(self, init_config: bool = True, init_db_fn: Optional[callable] = None):
        self.home.mkdir(parents=True, exist_ok=True)

        if init_config and not self.config_path.exists():
            save_config_from_template(TaskcalConfig(), self.config_path)

        if init_db_fn and not self.db_path.exists():
            init_db_fn(self.db_path)

    def load_config(self) -> TaskcalConfig:
        # Step 1: Create the file if it doesn't exist
        if not self.config_path.exists():
            config = TaskcalConfig()
            self.home.mkdir(parents=True, exist_ok=True)
            save_config_from_template(config, self.config_path)
            self._config = config
            return config

        # Step 2: Try to load and validate the config
        try:
            with open(self.config_path, "rb") as f:
                data = tomllib.load(f)
            config = TaskcalConfig.model_validate(data)
            self.config_error = None
        except (ValidationError, tomllib.TOMLDecodeError) as e:
            self.config_error = f"Config error in {self.config_path}: {e}"
            config = TaskcalConfig()
            # keep the broken file for the user to fix
            self._config = config
            return config

        # Step 3: Always regenerate the canonical version
        rendered = render_config(config)
        current_text = self.config_path.read_text(encoding="utf-8")
        if rendered != current_text:
            self.config_path.write_text(rendered, encoding="utf-8")

        self._config = config
        return config

    @property
    def config(self) -> TaskcalConfig:
        if self._config is None:
            return self.load_config()
        return self._config

    def _resolve_home(self) -> Path:
        cwd = Path.cwd()
        if (cwd / "config.toml").exists() and (cwd / "taskcal.db").exists():
            return cwd

        env_home = os.getenv("TASKCAL_HOME")
        if env_home:
            return Path(env_home).expanduser()

        xdg_home = os.getenv("XDG_CONFIG_HOME")
        if xdg_home:
            return Path(xdg_home).expanduser() / "taskcal"
        else:
            return Path.home() / ".config" / "taskcal"
