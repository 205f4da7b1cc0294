from dotenv import dotenv_values
import pytest

from autoprovision.src.apple.models import DistributionType, PortalCertificate, Platform, Profile
from autoprovision.src.core.certificate_matcher import MatchedCertificate
from autoprovision.src.core.errors import AutoProvisionError
from autoprovision.src.core.orchestrator import AppLayout, CodesignAssets
from autoprovision.src.utils.outputs import build_outputs, export_outputs
from tests.fakes import NOW, TEAM_ID, make_local_certificate

LAYOUT = AppLayout(
    team_id=TEAM_ID,
    platform=Platform.IOS,
    entitlements_by_bundle_id={"com.acme.app": None, "com.acme.app.widget": None},
)


def assets(common_name, uuid):
    certificate = MatchedCertificate(
        local=make_local_certificate(common_name),
        portal=PortalCertificate(id="c1", serial_number=1, certificate_type="IOS_DEVELOPMENT", name=""),
    )
    profile = Profile(
        id="p1",
        name="profile",
        uuid=uuid,
        profile_state="ACTIVE",
        profile_type="IOS_APP_DEVELOPMENT",
        platform="IOS",
        expiration_date=NOW,
    )
    return CodesignAssets(certificate=certificate, archivable_target_profiles={"com.acme.app": profile})


def test_development_outputs():
    outputs = build_outputs(
        DistributionType.DEVELOPMENT,
        LAYOUT,
        {DistributionType.DEVELOPMENT: assets("Apple Development: John", "dev-uuid")},
    )

    assert outputs == {
        "BITRISE_EXPORT_METHOD": "development",
        "BITRISE_DEVELOPER_TEAM": TEAM_ID,
        "BITRISE_DEVELOPMENT_CODESIGN_IDENTITY": "Apple Development: John",
        "BITRISE_DEVELOPMENT_PROFILE": "dev-uuid",
    }


def test_app_store_outputs():
    outputs = build_outputs(
        DistributionType.APP_STORE,
        LAYOUT,
        {
            DistributionType.APP_STORE: assets("Apple Distribution: Acme", "store-uuid"),
            DistributionType.DEVELOPMENT: assets("Apple Development: John", "dev-uuid"),
        },
    )

    assert outputs["BITRISE_EXPORT_METHOD"] == "app-store"
    assert outputs["BITRISE_PRODUCTION_CODESIGN_IDENTITY"] == "Apple Distribution: Acme"
    assert outputs["BITRISE_PRODUCTION_PROFILE"] == "store-uuid"
    assert outputs["BITRISE_DEVELOPMENT_PROFILE"] == "dev-uuid"


def test_missing_selected_distribution():
    with pytest.raises(AutoProvisionError):
        build_outputs(
            DistributionType.AD_HOC,
            LAYOUT,
            {DistributionType.DEVELOPMENT: assets("Apple Development: John", "dev-uuid")},
        )


def test_export_to_env_file(tmp_path):
    env_file = tmp_path / "outputs" / "autoprovision.env"

    export_outputs({"BITRISE_EXPORT_METHOD": "ad-hoc", "BITRISE_DEVELOPER_TEAM": TEAM_ID}, str(env_file))

    assert dotenv_values(env_file) == {
        "BITRISE_EXPORT_METHOD": "ad-hoc",
        "BITRISE_DEVELOPER_TEAM": TEAM_ID,
    }
