import pytest

from autoprovision.src.apple.models import DistributionType, Platform, TestDevice
from autoprovision.src.core.errors import (
    AutoProvisionError,
    MissingICloudContainersError,
    UnsupportedEntitlementError,
)
from autoprovision.src.core.orchestrator import AppLayout, CodesignAssetManager
from tests.fakes import TEAM_ID, make_local_certificate

DEVELOPMENT_SERIAL = 0x1A2B
DISTRIBUTION_SERIAL = 0x3C4D


def make_layout(entitlements_by_bundle_id=None, ui_test_bundle_ids=None, platform=Platform.IOS):
    return AppLayout(
        team_id=TEAM_ID,
        platform=platform,
        entitlements_by_bundle_id=entitlements_by_bundle_id
        or {"com.acme.app": {"aps-environment": "development"}, "com.acme.app.widget": None},
        ui_test_bundle_ids=ui_test_bundle_ids or [],
    )


def development_certificate():
    return make_local_certificate("Apple Development: John Doe (ABCDE12345)", DEVELOPMENT_SERIAL)


def distribution_certificate():
    return make_local_certificate("Apple Distribution: Acme Inc (TEAM123456)", DISTRIBUTION_SERIAL)


@pytest.fixture
def portal(client):
    client.add_certificate(DEVELOPMENT_SERIAL, "IOS_DEVELOPMENT")
    client.add_certificate(DISTRIBUTION_SERIAL, "IOS_DISTRIBUTION")
    client.add_device("iphone-udid", "IPHONE")
    return client


def test_unsupported_entitlement_fails_before_any_portal_call(portal, clock):
    layout = make_layout({"com.acme.app": {"com.apple.developer.carplay-maps": True}})
    manager = CodesignAssetManager(portal, clock=clock)

    with pytest.raises(UnsupportedEntitlementError):
        manager.auto_codesign(DistributionType.DEVELOPMENT, layout, [development_certificate()])

    assert portal.calls == []


def test_platform_without_profiles_fails_before_any_portal_call(portal, clock):
    manager = CodesignAssetManager(
        portal, test_devices=[TestDevice(device_id="new-mac-udid")], clock=clock
    )

    with pytest.raises(AutoProvisionError):
        manager.auto_codesign(
            DistributionType.DEVELOPMENT,
            make_layout(platform=Platform.MACOS),
            [development_certificate()],
        )

    assert portal.calls_to("register_device") == []
    assert portal.calls == []


def test_development_run_creates_everything(portal, clock):
    manager = CodesignAssetManager(portal, clock=clock)

    assets = manager.auto_codesign(
        DistributionType.DEVELOPMENT, make_layout(), [development_certificate()]
    )

    development = assets[DistributionType.DEVELOPMENT]
    assert set(development.archivable_target_profiles) == {"com.acme.app", "com.acme.app.widget"}
    assert development.certificate.local.serial_number == DEVELOPMENT_SERIAL
    assert [c[1] for c in portal.calls_to("create_bundle_id")] == ["com.acme.app", "com.acme.app.widget"]
    profile = development.archivable_target_profiles["com.acme.app"]
    assert profile.name == "Bitrise iOS development - (com.acme.app)"
    assert portal.profile_devices[profile.id] == {portal.devices[0].id}


def test_second_run_is_read_only(portal, clock):
    manager = CodesignAssetManager(portal, clock=clock)
    layout = make_layout()
    manager.auto_codesign(DistributionType.DEVELOPMENT, layout, [development_certificate()])
    mutations = len(portal.mutations)

    CodesignAssetManager(portal, clock=clock).auto_codesign(
        DistributionType.DEVELOPMENT, layout, [development_certificate()]
    )

    assert len(portal.mutations) == mutations


def test_app_store_run_also_provisions_development(portal, clock):
    manager = CodesignAssetManager(portal, clock=clock)

    assets = manager.auto_codesign(
        DistributionType.APP_STORE,
        make_layout(),
        [distribution_certificate(), development_certificate()],
    )

    assert list(assets) == [DistributionType.APP_STORE, DistributionType.DEVELOPMENT]
    app_store_profile = assets[DistributionType.APP_STORE].archivable_target_profiles["com.acme.app"]
    assert portal.profile_devices[app_store_profile.id] == set()
    # The App ID is created once and reused by both distribution types
    assert len([c for c in portal.calls_to("create_bundle_id") if c[1] == "com.acme.app"]) == 1


def test_app_store_run_without_development_certificate(portal, clock):
    manager = CodesignAssetManager(portal, clock=clock)

    assets = manager.auto_codesign(
        DistributionType.APP_STORE, make_layout(), [distribution_certificate()]
    )

    assert list(assets) == [DistributionType.APP_STORE]
    assert portal.calls_to("list_devices") == []


def test_ui_test_targets_get_wildcard_development_profiles(portal, clock):
    manager = CodesignAssetManager(portal, clock=clock)
    layout = make_layout(ui_test_bundle_ids=["com.acme.app.UITests"])

    assets = manager.auto_codesign(
        DistributionType.DEVELOPMENT, layout, [development_certificate()]
    )

    ui_profile = assets[DistributionType.DEVELOPMENT].ui_test_target_profiles["com.acme.app.UITests"]
    assert ui_profile.name == "Wildcard Bitrise iOS development - (com.acme.app)"
    assert ("create_bundle_id", "com.acme.app.*", "Wildcard Bitrise com acme app  ") in portal.calls


def test_test_devices_are_registered(portal, clock):
    manager = CodesignAssetManager(
        portal, test_devices=[TestDevice(device_id="new-udid")], clock=clock
    )

    assets = manager.auto_codesign(
        DistributionType.DEVELOPMENT, make_layout(), [development_certificate()]
    )

    profile = assets[DistributionType.DEVELOPMENT].archivable_target_profiles["com.acme.app"]
    assert len(portal.profile_devices[profile.id]) == 2


def test_icloud_containers_are_aggregated(portal, clock):
    def icloud(container):
        return {
            "com.apple.developer.icloud-services": ["CloudKit"],
            "com.apple.developer.icloud-container-identifiers": [container],
        }

    layout = make_layout(
        {
            "com.acme.app": icloud("iCloud.com.acme.app"),
            "com.acme.app.extension": icloud("iCloud.com.acme.shared"),
        }
    )
    manager = CodesignAssetManager(portal, clock=clock)

    with pytest.raises(MissingICloudContainersError) as exc_info:
        manager.auto_codesign(DistributionType.DEVELOPMENT, layout, [development_certificate()])

    assert exc_info.value.containers_by_bundle_id == {
        "com.acme.app": ["iCloud.com.acme.app"],
        "com.acme.app.extension": ["iCloud.com.acme.shared"],
    }
    # Every target was still processed
    assert len(portal.calls_to("create_profile")) == 2
