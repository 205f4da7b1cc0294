import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import toml
from dotenv import find_dotenv, load_dotenv

from autoprovision.src.apple.models import DistributionType
from autoprovision.src.certificates.local_certificates import CertificateFileURL
from autoprovision.src.core.errors import ConfigError

ENV_PREFIX = "AUTOPROVISION_"
CONNECTIONS = ("automatic", "api_key", "apple_id", "off")
SECRET_FIELDS = {"build_api_token", "keychain_password", "passphrases", "certificate_urls"}

# Variables the build environment sets on its own
FALLBACK_ENV = {
    "build_url": "BITRISE_BUILD_URL",
    "build_api_token": "BITRISE_BUILD_API_TOKEN",
}

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off", ""}


def get_config_path() -> Path:
    """Return the path to the configuration file."""
    override = os.environ.get(f"{ENV_PREFIX}CONFIG")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".autoprovision" / "config.toml"


def load_config_file(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration from TOML file."""
    config_path = path or get_config_path()
    if not config_path.exists():
        return {}

    try:
        return toml.load(config_path)
    except (toml.TomlDecodeError, OSError) as e:
        raise ConfigError(f"Failed to load config ({config_path}): {e}") from e


@dataclass
class Config:
    connection: str = "automatic"
    api_key_path: str = ""
    api_key_id: str = ""
    api_issuer: str = ""
    team_id: str = ""
    layout_path: str = "autoprovision.toml"
    sign_uitest_targets: bool = False
    register_test_devices: bool = False
    distribution_type: DistributionType = DistributionType.DEVELOPMENT
    min_profile_days_valid: int = 0
    certificate_urls: List[str] = field(default_factory=list)
    passphrases: List[str] = field(default_factory=list)
    keychain_path: str = "~/Library/Keychains/login.keychain"
    keychain_password: str = ""
    verbose_log: bool = False
    build_url: str = ""
    build_api_token: str = ""
    session_path: str = ""
    output_path: str = ""

    def validate(self) -> "Config":
        if self.connection not in CONNECTIONS:
            raise ConfigError(
                f"connection: unexpected value ({self.connection}), expected one of: {', '.join(CONNECTIONS)}"
            )
        if self.min_profile_days_valid < 0:
            raise ConfigError("min_profile_days_valid: must not be negative")
        if bool(self.api_key_path) != bool(self.api_issuer):
            raise ConfigError(
                "api_key_path, api_issuer: both need to be set to use an API key, or neither"
            )
        if self.api_key_path and not self.api_key_id:
            raise ConfigError("api_key_id: required when api_key_path is set")
        return self

    def certificate_file_urls(self) -> List[CertificateFileURL]:
        if not self.certificate_urls:
            raise ConfigError("certificate_urls: at least one certificate URL is required")
        passphrases = self.passphrases or [""] * len(self.certificate_urls)
        if len(passphrases) != len(self.certificate_urls):
            raise ConfigError(
                f"passphrases: {len(self.certificate_urls)} certificate URLs provided, "
                f"but {len(passphrases)} passphrases"
            )
        return [
            CertificateFileURL(url=url, passphrase=passphrase)
            for url, passphrase in zip(self.certificate_urls, passphrases)
        ]

    def masked_items(self) -> List[tuple]:
        """(name, value) pairs with the secrets hidden, for printing"""
        items = []
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in SECRET_FIELDS and value:
                value = "***"
            elif isinstance(value, DistributionType):
                value = value.value
            items.append((f.name, str(value)))
        return items


def _split_list(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    text = str(value).strip()
    if not text:
        return []
    # Passphrases may legitimately be empty, only drop the separator padding
    return [part.strip() for part in text.split("|")]


def _coerce(name: str, kind: Any, value: Any) -> Any:
    if kind is bool:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in TRUE_VALUES:
            return True
        if text in FALSE_VALUES:
            return False
        raise ConfigError(f"{name}: expected a boolean, got ({value})")
    if kind is int:
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{name}: expected an integer, got ({value})") from None
    if kind is DistributionType:
        try:
            return DistributionType(str(value))
        except ValueError:
            allowed = ", ".join(d.value for d in DistributionType)
            raise ConfigError(
                f"{name}: unexpected value ({value}), expected one of: {allowed}"
            ) from None
    if kind is list:
        return _split_list(value)
    return str(value)


_FIELD_KINDS = {
    "sign_uitest_targets": bool,
    "register_test_devices": bool,
    "verbose_log": bool,
    "min_profile_days_valid": int,
    "distribution_type": DistributionType,
    "certificate_urls": list,
    "passphrases": list,
}


def load_config(
    overrides: Optional[Mapping[str, Any]] = None,
    config_path: Optional[Path] = None,
    env_file: Optional[str] = None,
) -> Config:
    """Merge defaults, the TOML file, `.env`, `AUTOPROVISION_*` variables and CLI overrides"""
    values: Dict[str, Any] = {}
    names = [f.name for f in fields(Config)]

    for key, value in load_config_file(config_path).items():
        if key in names:
            values[key] = value

    # .env never overrides the real environment
    load_dotenv(env_file or find_dotenv(usecwd=True), override=False)

    for name in names:
        env_value = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
        if env_value is None and name in FALLBACK_ENV and name not in values:
            env_value = os.environ.get(FALLBACK_ENV[name])
        if env_value is not None:
            values[name] = env_value

    for key, value in (overrides or {}).items():
        if key in names and value is not None:
            values[key] = value

    coerced = {
        name: _coerce(name, _FIELD_KINDS.get(name, str), value)
        for name, value in values.items()
    }
    return Config(**coerced).validate()
