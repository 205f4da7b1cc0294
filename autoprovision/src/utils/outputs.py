from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import set_key

from autoprovision.logger import get_console
from autoprovision.src.apple.models import DistributionType
from autoprovision.src.core.errors import AutoProvisionError
from autoprovision.src.core.orchestrator import AppLayout, CodesignAssets

console = get_console()


def _main_target_profile_uuid(assets: CodesignAssets, layout: AppLayout) -> str:
    profile = assets.archivable_target_profiles.get(layout.main_bundle_id)
    if profile is None:
        raise AutoProvisionError("No provisioning profile ensured for the main target")
    return profile.uuid


def build_outputs(
    distribution_type: DistributionType,
    layout: AppLayout,
    assets_by_distribution: Mapping[DistributionType, CodesignAssets],
) -> Dict[str, str]:
    """Signing settings later build steps pick up"""
    distribution_type = DistributionType(distribution_type)
    outputs = {
        "BITRISE_EXPORT_METHOD": distribution_type.value,
        "BITRISE_DEVELOPER_TEAM": layout.team_id,
    }

    development = assets_by_distribution.get(DistributionType.DEVELOPMENT)
    if development is not None:
        outputs["BITRISE_DEVELOPMENT_CODESIGN_IDENTITY"] = development.certificate.local.common_name
        outputs["BITRISE_DEVELOPMENT_PROFILE"] = _main_target_profile_uuid(development, layout)

    if distribution_type != DistributionType.DEVELOPMENT:
        production = assets_by_distribution.get(distribution_type)
        if production is None:
            raise AutoProvisionError(
                f"No codesign settings ensured for the selected distribution type: {distribution_type.value}"
            )
        outputs["BITRISE_PRODUCTION_CODESIGN_IDENTITY"] = production.certificate.local.common_name
        outputs["BITRISE_PRODUCTION_PROFILE"] = _main_target_profile_uuid(production, layout)

    return outputs


def export_outputs(outputs: Mapping[str, str], output_path: Optional[str] = None) -> None:
    """Print the outputs and, when a path is set, store them in an env file"""
    console.print("\n[blue]Exporting outputs")
    env_file = None
    if output_path:
        env_file = Path(output_path).expanduser()
        env_file.parent.mkdir(parents=True, exist_ok=True)
        env_file.touch(exist_ok=True)

    for key, value in outputs.items():
        console.print(f"[green]{key}={value}")
        if env_file is not None:
            set_key(str(env_file), key, value, quote_mode="never")
