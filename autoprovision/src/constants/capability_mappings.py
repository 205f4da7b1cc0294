# App Store Connect capability type -> entitlement keys that need it enabled on the App ID
CAPABILITY_MAPPING = {
    "ACCESS_WIFI_INFORMATION": ["com.apple.developer.networking.wifi-info"],
    "APP_GROUPS": ["com.apple.security.application-groups"],
    "APPLE_ID_AUTH": ["com.apple.developer.applesignin"],
    "APPLE_PAY": ["com.apple.developer.in-app-payments"],
    "ASSOCIATED_DOMAINS": ["com.apple.developer.associated-domains"],
    "AUTOFILL_CREDENTIAL_PROVIDER": [
        "com.apple.developer.authentication-services.autofill-credential-provider"
    ],
    "CLASSKIT": ["com.apple.developer.ClassKit-environment"],
    "COREMEDIA_HLS_LOW_LATENCY": ["com.apple.developer.coremedia.hls.low-latency"],
    "DATA_PROTECTION": ["com.apple.developer.default-data-protection"],
    "GAME_CENTER": ["com.apple.developer.game-center"],
    "HEALTHKIT": ["com.apple.developer.healthkit"],
    "HOMEKIT": ["com.apple.developer.homekit"],
    "HOT_SPOT": ["com.apple.developer.networking.HotspotConfiguration"],
    "ICLOUD": [
        "com.apple.developer.icloud-services",
        "com.apple.developer.ubiquity-kvstore-identifier",
    ],
    "IN_APP_PURCHASE": ["com.apple.InAppPurchase"],
    "INTER_APP_AUDIO": ["inter-app-audio"],
    "MULTIPATH": ["com.apple.developer.networking.multipath"],
    "NETWORK_EXTENSIONS": ["com.apple.developer.networking.networkextension"],
    "NFC_TAG_READING": ["com.apple.developer.nfc.readersession.formats"],
    "PERSONAL_VPN": ["com.apple.developer.networking.vpn.api"],
    "PUSH_NOTIFICATIONS": ["aps-environment", "com.apple.developer.aps-environment"],
    "SIRIKIT": ["com.apple.developer.siri"],
    "WALLET": ["com.apple.developer.pass-type-identifiers"],
    "WIRELESS_ACCESSORY_CONFIGURATION": [
        "com.apple.external-accessory.wireless-configuration"
    ],
}

# Entitlements that never need a portal action: they are either derived by the
# portal from the App ID or come along with another capability
IGNORED_ENTITLEMENTS = {
    "application-identifier",
    "com.apple.developer.team-identifier",
    "keychain-access-groups",
    "get-task-allow",
    "beta-reports-active",
    "com.apple.developer.icloud-container-identifiers",
    "com.apple.developer.icloud-container-development-container-identifiers",
    "com.apple.developer.icloud-container-environment",
    "com.apple.developer.ubiquity-container-identifiers",
}

# Capabilities Apple grants per team on request. They are attached to the
# profile by Apple and can not be enabled through the API.
PROFILE_ATTACHED_CAPABILITIES = {
    "Contacts Notes": ["com.apple.developer.contacts.notes"],
    "CarPlay Audio": [
        "com.apple.developer.carplay-audio",
        "com.apple.developer.playable-content",
    ],
    "CarPlay EV Charging": ["com.apple.developer.carplay-charging"],
    "CarPlay Communication": ["com.apple.developer.carplay-communication"],
    "CarPlay Navigation": ["com.apple.developer.carplay-maps"],
    "CarPlay Parking": ["com.apple.developer.carplay-parking"],
    "CarPlay Quick Food Ordering": ["com.apple.developer.carplay-quick-ordering"],
    "Critical Alerts": ["com.apple.developer.usernotifications.critical-alerts"],
    "Multicast": ["com.apple.developer.networking.multicast"],
    "Notification (NSE) Filtering": ["com.apple.developer.usernotifications.filtering"],
}

ICLOUD_SERVICES_KEY = "com.apple.developer.icloud-services"
ICLOUD_CONTAINERS_KEY = "com.apple.developer.icloud-container-identifiers"
ICLOUD_KVSTORE_KEY = "com.apple.developer.ubiquity-kvstore-identifier"
DATA_PROTECTION_KEY = "com.apple.developer.default-data-protection"

# default-data-protection value -> portal permission level option
DATA_PROTECTION_LEVELS = {
    "NSFileProtectionComplete": "COMPLETE_PROTECTION",
    "NSFileProtectionCompleteUnlessOpen": "PROTECTED_UNLESS_OPEN",
    "NSFileProtectionCompleteUntilFirstUserAuthentication": "PROTECTED_UNTIL_FIRST_USER_AUTH",
}

# Settings sent along when enabling a capability
CAPABILITY_SETTINGS = {
    "ICLOUD": [{"key": "ICLOUD_VERSION", "options": [{"key": "XCODE_6"}]}],
    "APPLE_ID_AUTH": [
        {
            "key": "APPLE_ID_AUTH_APP_CONSENT",
            "options": [{"key": "PRIMARY_APP_CONSENT"}],
        }
    ],
}
