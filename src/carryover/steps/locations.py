"""Where each captured tool keeps its state below a home directory."""

from pathlib import Path

CLAUDE_FILES = ("CLAUDE.md", "settings.json", "config.json", "history.jsonl", "stats-cache.json")
CLAUDE_ARCHIVES = ("plans", "plugins", "projects", "file-history", "todos", "tasks", "paste-cache")
CLAUDE_EMPTY_DIRS = (
    "debug",
    "shell-snapshots",
    "session-env",
    "teams",
    "telemetry",
    "cache",
    "chrome",
    "ide",
    "statsig",
)

CODEX_FILES = (
    "config.json",
    "config.toml",
    "instructions.md",
    "auth.json",
    "history.json",
    "history.jsonl",
    ".codex-global-state.json",
    "version.json",
    "update-check.json",
)
CODEX_ARCHIVES = ("sessions", "vendor_imports")
CODEX_DIRS = ("rules", "skills", "sqlite", "log", "tmp", "shell_snapshots")
CODEX_RULES = "rules/default.rules"
CODEX_DB = "sqlite/codex-dev.db"

PROJECT_CONFIG_ROOTS = ("GitHub", "Downloads")
PROJECT_PATHS_FILENAME = "project-paths.json"

SSH_FILES = ("id_ed25519", "id_ed25519.pub", "known_hosts")
GH_FILES = ("config.yml", "hosts.yml")
AWS_FILES = ("config", "credentials")
# (home-relative source, backup name under shell-env/)
SHELL_DOTFILES = ((".zshrc", "zshrc"), (".profile", "profile"), (".gitconfig", "gitconfig"))

EDGE_PROFILE_FILES = (
    "Bookmarks",
    "Bookmarks.bak",
    "Preferences",
    "Secure Preferences",
    "Top Sites",
    "Favicons",
    "History",
    "Web Data",
)
EDGE_PROFILE_DIRS = ("Sessions", "Extensions", "Collections")
EDGE_LOCAL_STATE = "Local State"
EDGE_OPEN_TABS = "open-tabs.json"
EDGE_PROFILES_FILENAME = "profiles.json"

CURSOR_FILES = ("settings.json", "keybindings.json")

DATAGRIP_DIRS = ("options", "workspace", "consoles", "codestyles", "tasks", "jdbc-drivers")
DATAGRIP_FILES = ("datagrip.vmoptions", "datagrip.key")
DATAGRIP_VERSION_FILENAME = "datagrip-version.txt"
DATAGRIP_DEFAULT_VERSION = "DataGrip2025.2"
# (home-relative source, backup name under db-tools/psql/)
PSQL_FILES = (
    (".psqlrc", "psqlrc"),
    (".psql_history", "psql_history"),
    (".pgpass", "pgpass"),
    (".pg_service.conf", "pg_service.conf"),
)

ITERM_PLIST = "com.googlecode.iterm2.plist"
WARP_PLISTS = ("dev.warp.Warp-Stable.plist", "dev.warp.Warp.plist")
RECTANGLE_PLIST = "com.knewton.Rectangle.plist"
CONDUCTOR_PLIST = "com.conductor.app.plist"

GITHUB_EXCLUDES = (
    "node_modules",
    ".next",
    ".venv",
    "venv",
    "__pycache__",
    ".cache",
    "dist",
    "build",
    ".turbo",
    ".nyc_output",
    "coverage",
    ".DS_Store",
)
GITHUB_ARCHIVE = "github.tar.gz"


def claude_home(home: Path) -> Path:
    return home / ".claude"


def codex_home(home: Path) -> Path:
    return home / ".codex"


def agents_home(home: Path) -> Path:
    return home / ".agents"


def conductor_home(home: Path) -> Path:
    return home / "conductor"


def application_support(home: Path) -> Path:
    return home / "Library" / "Application Support"


def preferences(home: Path) -> Path:
    return home / "Library" / "Preferences"


def conductor_app_support(home: Path) -> Path:
    return application_support(home) / "com.conductor.app"


def edge_home(home: Path) -> Path:
    return application_support(home) / "Microsoft Edge"


def cursor_user_dir(home: Path) -> Path:
    return application_support(home) / "Cursor" / "User"


def jetbrains_dir(home: Path) -> Path:
    return application_support(home) / "JetBrains"


def iterm_profiles_dir(home: Path) -> Path:
    return application_support(home) / "iTerm2" / "DynamicProfiles"


def encode_project_path(home: Path, project_dir: Path) -> str:
    """Flatten a home-relative project path into one folder name.

    Example:
        >>> encode_project_path(Path("/h"), Path("/h/GitHub/org/app"))
        'GitHub--org--app'
    """
    return project_dir.relative_to(home).as_posix().replace("/", "--")


def encode_profile_name(name: str) -> str:
    """Make a browser profile name safe for a folder name.

    Example:
        >>> encode_profile_name("Profile 1")
        'Profile_1'
    """
    return name.replace(" ", "_")


def decode_profile_name(name: str) -> str:
    return name.replace("_", " ")


def latest_datagrip(home: Path) -> Path | None:
    """Return the newest ``DataGrip*`` config directory, if any."""
    base = jetbrains_dir(home)
    if not base.is_dir():
        return None
    candidates = [path for path in base.glob("DataGrip*") if path.is_dir()]
    if not candidates:
        return None
    return max(candidates, key=lambda path: _version_key(path.name))


def _version_key(name: str) -> tuple:
    digits = "".join(ch if ch.isdigit() else " " for ch in name).split()
    return tuple(int(part) for part in digits)
