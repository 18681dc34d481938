"""Configuration loading and validation module.

This module handles all YAML configuration loading and provides a typed
Config dataclass consumed by all other modules. Every field is optional;
defaults mirror the command line flags of the driver.
"""

import dataclasses
import os
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Union
import yaml


DEFAULT_INTERVAL_SECONDS = 30.0
DEFAULT_DOCUMENT_PREFIX = "pod-ashiato"

_NUMBER_RE = re.compile(r"^\d+(?:\.\d+)?$")
_DURATION_TERM = r"(\d+(?:\.\d*)?|\.\d+)(ns|us|\u00b5s|\u03bcs|ms|s|m|h)"
_DURATION_RE = re.compile(rf"^(?:{_DURATION_TERM})+$")
_DURATION_TERM_RE = re.compile(_DURATION_TERM)
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "\u00b5s": 1e-6,
    "\u03bcs": 1e-6,
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


class ConfigError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


def _default_kubeconfig() -> Optional[str]:
    home = os.path.expanduser("~")
    if not home or home == "~":
        return None
    return os.path.join(home, ".kube", "config")


@dataclass
class KubernetesConfig:
    """Cluster connection configuration."""
    kubeconfig: Optional[str] = field(default_factory=_default_kubeconfig)
    context: Optional[str] = None


@dataclass
class SamplerConfig:
    """Sampling behavior and pod filters."""
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS
    oneshot: bool = False
    namespace: str = ""
    name_prefix: str = ""
    label_selector: str = ""


@dataclass
class StoreConfig:
    """Hourly ConfigMap store configuration."""
    enabled: bool = False
    namespace: str = "default"
    prefix: str = DEFAULT_DOCUMENT_PREFIX


@dataclass
class Config:
    """Root configuration dataclass."""
    kubernetes: KubernetesConfig = field(default_factory=KubernetesConfig)
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    store: StoreConfig = field(default_factory=StoreConfig)


def default_config() -> Config:
    """Return a Config populated entirely with defaults."""
    return Config()


def parse_interval(value: Union[int, float, str], field_name: str = "sampler.interval") -> float:
    """Convert an interval value to seconds.

    Accepts a bare number of seconds or a duration string in the same form
    as Go's time.ParseDuration: a sequence of decimal numbers, each with a
    unit ("ns", "us", "ms", "s", "m", "h"), such as "30s", "1m30s" or
    "1h0m0s". The terms are summed.

    Args:
        value: The raw interval value
        field_name: Name of the field for error messages

    Returns:
        Interval in seconds

    Raises:
        ConfigError: If the value cannot be parsed or is not positive
    """
    if isinstance(value, bool):
        raise ConfigError(f"Field '{field_name}' must be a duration, got bool")

    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if _NUMBER_RE.match(text):
            seconds = float(text)
        elif _DURATION_RE.match(text):
            seconds = sum(
                float(number) * _DURATION_UNITS[unit]
                for number, unit in _DURATION_TERM_RE.findall(text)
            )
        else:
            raise ConfigError(
                f"Field '{field_name}' is not a valid duration: {value!r}"
            )
    else:
        raise ConfigError(
            f"Field '{field_name}' must be a duration, got {type(value).__name__}"
        )

    if seconds <= 0:
        raise ConfigError(f"{field_name} must be > 0")
    return seconds


def _get_nested(data: dict, path: str, required: bool = True, default: Any = None) -> Any:
    """Get a nested value from a dictionary using dot notation.

    Args:
        data: The dictionary to search
        path: Dot-separated path to the value (e.g., "sampler.namespace")
        required: If True, raises ConfigError when value is missing
        default: Default value if not required and missing

    Returns:
        The value at the path, or default if not required and missing

    Raises:
        ConfigError: If required value is missing
    """
    keys = path.split(".")
    current = data

    for key in keys:
        if not isinstance(current, dict):
            if required:
                raise ConfigError(f"Configuration path '{path}' is not a valid nested structure")
            return default
        if key not in current:
            if required:
                raise ConfigError(f"Missing required configuration field: {path}")
            return default
        current = current[key]

    return current


def _validate_type(value: Any, expected_type: type, field_name: str) -> None:
    """Validate that a value is of the expected type.

    Args:
        value: The value to validate
        expected_type: The expected type
        field_name: Name of the field for error messages

    Raises:
        ConfigError: If value is not of the expected type
    """
    if expected_type is bool:
        if not isinstance(value, bool):
            raise ConfigError(
                f"Field '{field_name}' must be a boolean, got {type(value).__name__}"
            )
    elif expected_type is str:
        if not isinstance(value, str):
            raise ConfigError(
                f"Field '{field_name}' must be a string, got {type(value).__name__}"
            )
    elif expected_type is dict:
        if not isinstance(value, dict):
            raise ConfigError(
                f"Section '{field_name}' must be a mapping, got {type(value).__name__}"
            )
    else:
        if not isinstance(value, expected_type):
            raise ConfigError(
                f"Field '{field_name}' must be of type {expected_type.__name__}, got {type(value).__name__}"
            )


def _optional_str(section: dict, key: str, path: str, default: Optional[str]) -> Optional[str]:
    value = _get_nested(section, key, required=False, default=default)
    if value is not None:
        _validate_type(value, str, path)
    return value


def load_config(path: str) -> Config:
    """Load and validate configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file

    Returns:
        Config: Validated configuration object

    Raises:
        ConfigError: If the file cannot be read or configuration is invalid
    """
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Configuration file not found: {path}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file: {e}")

    if data is None:
        raise ConfigError("Configuration file is empty")

    if not isinstance(data, dict):
        raise ConfigError("Configuration file must contain a YAML dictionary")

    defaults = default_config()

    # Kubernetes configuration
    kube_data = _get_nested(data, "kubernetes", required=False, default={})
    _validate_type(kube_data, dict, "kubernetes")

    kubeconfig = _optional_str(
        kube_data, "kubeconfig", "kubernetes.kubeconfig", defaults.kubernetes.kubeconfig
    )
    if kubeconfig:
        kubeconfig = os.path.expanduser(kubeconfig)
    context = _optional_str(kube_data, "context", "kubernetes.context", None)

    kubernetes = KubernetesConfig(kubeconfig=kubeconfig, context=context)

    # Sampler configuration
    sampler_data = _get_nested(data, "sampler", required=False, default={})
    _validate_type(sampler_data, dict, "sampler")

    interval_seconds = parse_interval(
        _get_nested(
            sampler_data, "interval", required=False,
            default=defaults.sampler.interval_seconds,
        )
    )

    oneshot = _get_nested(sampler_data, "oneshot", required=False, default=False)
    _validate_type(oneshot, bool, "sampler.oneshot")

    # None in YAML (e.g. "namespace:") means no filter
    namespace = _optional_str(sampler_data, "namespace", "sampler.namespace", "") or ""
    name_prefix = _optional_str(sampler_data, "name_prefix", "sampler.name_prefix", "") or ""
    label_selector = (
        _optional_str(sampler_data, "label_selector", "sampler.label_selector", "") or ""
    )

    sampler = SamplerConfig(
        interval_seconds=interval_seconds,
        oneshot=oneshot,
        namespace=namespace,
        name_prefix=name_prefix,
        label_selector=label_selector,
    )

    # Store configuration
    store_data = _get_nested(data, "store", required=False, default={})
    _validate_type(store_data, dict, "store")

    enabled = _get_nested(store_data, "enabled", required=False, default=False)
    _validate_type(enabled, bool, "store.enabled")

    store_namespace = _get_nested(
        store_data, "namespace", required=False, default=defaults.store.namespace
    )
    _validate_type(store_namespace, str, "store.namespace")
    if not store_namespace:
        raise ConfigError("store.namespace must not be empty")

    prefix = _get_nested(store_data, "prefix", required=False, default=defaults.store.prefix)
    _validate_type(prefix, str, "store.prefix")
    if not prefix:
        raise ConfigError("store.prefix must not be empty")

    store = StoreConfig(enabled=enabled, namespace=store_namespace, prefix=prefix)

    return Config(kubernetes=kubernetes, sampler=sampler, store=store)


def apply_overrides(
    cfg: Config,
    kubeconfig: Optional[str] = None,
    context: Optional[str] = None,
    interval: Optional[str] = None,
    oneshot: Optional[bool] = None,
    namespace: Optional[str] = None,
    name_prefix: Optional[str] = None,
    label_selector: Optional[str] = None,
    store_enabled: Optional[bool] = None,
    store_namespace: Optional[str] = None,
) -> Config:
    """Return a copy of cfg with command line values applied.

    A value of None means the flag was not given and the configured value
    is kept.

    Raises:
        ConfigError: If an override value is invalid
    """
    kubernetes = cfg.kubernetes
    if kubeconfig is not None:
        kubernetes = dataclasses.replace(kubernetes, kubeconfig=os.path.expanduser(kubeconfig))
    if context is not None:
        kubernetes = dataclasses.replace(kubernetes, context=context)

    sampler_changes: dict = {}
    if interval is not None:
        sampler_changes["interval_seconds"] = parse_interval(interval, "--interval")
    if oneshot is not None:
        sampler_changes["oneshot"] = oneshot
    if namespace is not None:
        sampler_changes["namespace"] = namespace
    if name_prefix is not None:
        sampler_changes["name_prefix"] = name_prefix
    if label_selector is not None:
        sampler_changes["label_selector"] = label_selector

    store_changes: dict = {}
    if store_enabled is not None:
        store_changes["enabled"] = store_enabled
    if store_namespace is not None:
        if not store_namespace:
            raise ConfigError("--store-namespace must not be empty")
        store_changes["namespace"] = store_namespace

    return Config(
        kubernetes=kubernetes,
        sampler=dataclasses.replace(cfg.sampler, **sampler_changes),
        store=dataclasses.replace(cfg.store, **store_changes),
    )
