"""Android project detection - locate the Gradle root and read app metadata."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from android_devloop.validation import is_valid_package

logger = structlog.get_logger()

SETTINGS_FILES = ("settings.gradle", "settings.gradle.kts")
APP_BUILD_FILES = ("build.gradle", "build.gradle.kts")
DEFAULT_VARIANTS = ("debug", "release")

_APPLICATION_ID_RE = re.compile(r"applicationId\s*=?\s*['\"]([^'\"]+)['\"]")
_BUILD_TYPES_RE = re.compile(r"\bbuildTypes\s*\{")
# Groovy `staging {`, Kotlin `create("staging") {` / `getByName("release") {`
_BUILD_TYPE_ENTRY_RE = re.compile(
    r"(?:^|\s)(?:(?:create|getByName|register|maybeCreate|named)\(\s*[\"'](\w+)[\"']\s*\)|(\w+))\s*\{"
)
# Closures on the buildTypes container itself, not build types.
_CONTAINER_METHODS = frozenset(
    {"all", "configureEach", "matching", "withType", "whenObjectAdded", "each", "forEach", "configure"}
)


def is_android_project(path: Path) -> bool:
    return any((path / name).is_file() for name in SETTINGS_FILES)


def _block_body(text: str, open_brace: int) -> str:
    """Return the text between the brace at open_brace and its match."""
    depth = 0
    for index in range(open_brace, len(text)):
        char = text[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[open_brace + 1 : index]
    return text[open_brace + 1 :]


def _top_level(body: str) -> str:
    """Drop nested brace contents so only direct children remain."""
    out: list[str] = []
    depth = 0
    for char in body:
        if char == "{":
            if depth == 0:
                out.append("{")
            depth += 1
        elif char == "}":
            depth -= 1
        elif depth == 0:
            out.append(char)
    return "".join(out)


def parse_application_id(build_script: str) -> str | None:
    match = _APPLICATION_ID_RE.search(build_script)
    return match.group(1) if match else None


def parse_build_variants(build_script: str) -> list[str]:
    """Default variants plus any custom buildTypes declared in the app script."""
    variants = list(DEFAULT_VARIANTS)
    match = _BUILD_TYPES_RE.search(build_script)
    if not match:
        return variants
    body = _top_level(_block_body(build_script, match.end() - 1))
    for entry in _BUILD_TYPE_ENTRY_RE.finditer(body):
        name = entry.group(1) or entry.group(2)
        if entry.group(2) in _CONTAINER_METHODS:
            continue
        if name and name not in variants:
            variants.append(name)
    return variants


@dataclass
class AndroidProject:
    """Metadata for a detected Gradle Android project."""

    root: Path
    app_dir: Path
    package_name: str
    build_variants: list[str] = field(default_factory=lambda: list(DEFAULT_VARIANTS))
    has_gradle_wrapper: bool = False

    @classmethod
    def detect(cls, start: Path | None = None) -> AndroidProject | None:
        """Search from start upwards for a Gradle settings file."""
        current = (start or Path.cwd()).expanduser().resolve()
        for candidate in (current, *current.parents):
            if is_android_project(candidate):
                logger.debug("project_found", path=str(candidate))
                return cls.load(candidate)
        logger.debug("project_not_found", start=str(current))
        return None

    @classmethod
    def load(cls, root: Path) -> AndroidProject:
        app_dir = root / "app"
        script = ""
        for name in APP_BUILD_FILES:
            path = app_dir / name
            if path.is_file():
                script = path.read_text(encoding="utf-8", errors="replace")
                break

        package = parse_application_id(script)
        if package is not None and not is_valid_package(package):
            logger.debug("application_id_unresolved", value=package)
            package = None
        return cls(
            root=root,
            app_dir=app_dir,
            package_name=package or "unknown",
            build_variants=parse_build_variants(script),
            has_gradle_wrapper=(root / "gradlew").is_file(),
        )

    @property
    def gradle_command(self) -> str:
        if self.has_gradle_wrapper:
            return str(self.root / "gradlew")
        return "gradle"

    def apk_path(self, variant: str) -> Path | None:
        """Locate the APK produced by assemble<Variant>."""
        apk_dir = self.app_dir / "build" / "outputs" / "apk" / variant
        if not apk_dir.is_dir():
            return None
        apks = sorted(apk_dir.glob("*.apk"))
        return apks[0] if apks else None
