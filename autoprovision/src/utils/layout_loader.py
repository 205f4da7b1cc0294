import plistlib
from pathlib import Path
from typing import Any, Dict, Optional, Union

import toml

from autoprovision.logger import debug
from autoprovision.src.apple.models import Platform
from autoprovision.src.constants.codesign_tables import PROFILE_TYPE_BY_PLATFORM
from autoprovision.src.core.errors import ConfigError
from autoprovision.src.core.orchestrator import AppLayout


def _load_entitlements(value: Any, base_dir: Path, bundle_id: str) -> Optional[Dict[str, Any]]:
    """Entitlements are either a plist path relative to the layout or an inline table"""
    if value is None:
        return None
    if isinstance(value, dict):
        return dict(value)

    path = Path(str(value)).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    try:
        with open(path, "rb") as f:
            entitlements = plistlib.load(f)
    except (OSError, plistlib.InvalidFileException) as e:
        raise ConfigError(f"failed to read entitlements of {bundle_id} ({path}): {e}") from e
    if not isinstance(entitlements, dict):
        raise ConfigError(f"entitlements of {bundle_id} ({path}): not a dictionary")
    return entitlements


def parse_layout(
    data: Dict[str, Any],
    base_dir: Union[str, Path] = ".",
    sign_uitest_targets: bool = False,
    team_id: str = "",
) -> AppLayout:
    team_id = team_id or data.get("team_id") or ""
    if not team_id:
        raise ConfigError("layout: team_id is required")

    try:
        platform = Platform(data.get("platform", Platform.IOS.value))
    except ValueError:
        platform = None
    # Only platforms with provisioning profile types can be provisioned
    if platform not in PROFILE_TYPE_BY_PLATFORM:
        allowed = ", ".join(p.value for p in PROFILE_TYPE_BY_PLATFORM)
        raise ConfigError(
            f"layout: unsupported platform ({data.get('platform')}), expected one of: {allowed}"
        )

    targets = data.get("targets") or []
    if not targets:
        raise ConfigError("layout: at least one [[targets]] entry is required")

    entitlements_by_bundle_id: Dict[str, Optional[Dict[str, Any]]] = {}
    for target in targets:
        bundle_id = target.get("bundle_id")
        if not bundle_id:
            raise ConfigError("layout: every target needs a bundle_id")
        entitlements_by_bundle_id[bundle_id] = _load_entitlements(
            target.get("entitlements"), Path(base_dir), bundle_id
        )

    ui_test_bundle_ids = []
    if sign_uitest_targets:
        ui_test_bundle_ids = [str(b) for b in data.get("ui_test_bundle_ids") or []]

    return AppLayout(
        team_id=team_id,
        platform=platform,
        entitlements_by_bundle_id=entitlements_by_bundle_id,
        ui_test_bundle_ids=ui_test_bundle_ids,
    )


def load_layout(path: Union[str, Path], sign_uitest_targets: bool = False, team_id: str = "") -> AppLayout:
    """Read the project description (targets, entitlements, UI test targets)"""
    path = Path(path).expanduser()
    try:
        data = toml.load(path)
    except FileNotFoundError:
        raise ConfigError(f"layout file not found: {path}") from None
    except (toml.TomlDecodeError, OSError) as e:
        raise ConfigError(f"failed to load layout ({path}): {e}") from e

    layout = parse_layout(data, path.parent, sign_uitest_targets, team_id)
    debug(
        f"Layout: team {layout.team_id}, platform {layout.platform.value}, "
        f"targets {list(layout.entitlements_by_bundle_id)}, UI test targets {layout.ui_test_bundle_ids}"
    )
    return layout
