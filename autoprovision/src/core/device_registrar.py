from typing import List

from autoprovision.logger import debug, get_console
from autoprovision.src.apple.models import Device, DevicePlatform, Platform, TestDevice
from autoprovision.src.apple.portal_client import DeveloperPortalClient
from autoprovision.src.constants.codesign_tables import DEVICE_CLASSES_BY_PLATFORM
from autoprovision.src.core.errors import DeviceRegistrationError

console = get_console()

REGISTERED_DEVICE_NAME = "Bitrise test device"


def normalize_udid(udid: str) -> str:
    """UDIDs compare case-insensitively and without the `-` separators"""
    return udid.replace("-", "").lower()


def device_platform_for(platform: Platform) -> DevicePlatform:
    if platform == Platform.MACOS:
        return DevicePlatform.MAC_OS
    # iOS device listing covers watchOS and tvOS device classes too
    return DevicePlatform.IOS


def filter_devices(devices: List[Device], platform: Platform) -> List[Device]:
    """Keep the device classes a profile of the given platform can run on"""
    device_classes = DEVICE_CLASSES_BY_PLATFORM.get(Platform(platform), frozenset())
    return [d for d in devices if str(d.device_class) in device_classes]


def register_missing_devices(
    client: DeveloperPortalClient,
    test_devices: List[TestDevice],
    portal_devices: List[Device],
    device_platform: DevicePlatform = DevicePlatform.IOS,
) -> List[Device]:
    """Register the test devices the portal does not know yet.

    A device the portal refuses is skipped with a warning, the rest are still
    registered.
    """
    known = {normalize_udid(d.udid) for d in portal_devices}
    registered = []

    for test_device in test_devices:
        udid = normalize_udid(test_device.device_id)
        console.print(f"checking if the device ({test_device.device_id}) is registered")
        if udid in known:
            console.print("device already registered")
            continue

        console.print("registering device")
        try:
            device = client.register_device(
                test_device.device_id, REGISTERED_DEVICE_NAME, device_platform
            )
        except DeviceRegistrationError as e:
            console.print(
                "[yellow]Failed to register device (can be caused by invalid UDID or "
                f"trying to register a Mac device): {e.reason}"
            )
            continue

        known.add(udid)
        registered.append(device)
    return registered


def ensure_test_devices(
    client: DeveloperPortalClient,
    test_devices: List[TestDevice],
    platform: Platform,
) -> List[str]:
    """Portal device IDs to put into development and ad-hoc profiles"""
    console.print("\n[blue]Fetching Apple Developer Portal devices")
    device_platform = device_platform_for(platform)
    portal_devices = client.list_devices(platform=device_platform)
    console.print(f"[green]{len(portal_devices)} devices are registered on the Apple Developer Portal")
    for device in portal_devices:
        debug(f"- {device.name}, {device.device_class}, UDID ({device.udid}), ID ({device.id})")

    if test_devices:
        console.print(f"\n[blue]Checking if {len(test_devices)} Bitrise test device(s) are registered on Developer Portal")
        for test_device in test_devices:
            debug(f"- {test_device.title}, {test_device.device_type}, UDID ({test_device.device_id})")

        new_devices = register_missing_devices(
            client, test_devices, portal_devices, device_platform
        )
        if new_devices:
            console.print(f"[green]{len(new_devices)} new devices registered")
        portal_devices = portal_devices + new_devices

    devices = filter_devices(portal_devices, platform)
    console.print(f"{len(devices)} devices will be included in the profiles")
    return [d.id for d in devices]
