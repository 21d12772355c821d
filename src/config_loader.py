"""
Configuration loader for the WiZ light controller
Loads and validates configuration from YAML files
"""

import yaml
import logging
from typing import Dict, Any
from pathlib import Path
from datetime import datetime
import pytz

logger = logging.getLogger(__name__)

def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file with validation
    """
    try:
        config_file = Path(config_path)
        if not config_file.exists():
            logger.error(f"Configuration file not found: {config_path}")
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_file, 'r') as f:
            config = yaml.safe_load(f) or {}

        # Validate required sections
        _validate_config(config)

        # Apply defaults
        config = _apply_defaults(config)

        logger.info(f"Configuration loaded from {config_path}")
        return config

    except Exception as e:
        logger.error(f"Failed to load configuration: {e}")
        raise

def _validate_config(config: Dict) -> None:
    """Validate that required configuration sections exist"""
    if not isinstance(config, dict):
        raise ValueError("Configuration root must be a mapping")

    required_sections = ['network']

    for section in required_sections:
        if section not in config:
            raise ValueError(f"Missing required configuration section: {section}")

    # Validate network section
    network = config['network'] or {}
    timeout = network.get('discovery_timeout')
    if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
        raise ValueError("network.discovery_timeout must be a positive number of seconds")

    probes = network.get('max_concurrent_probes')
    if probes is not None and (not isinstance(probes, int) or probes < 1):
        raise ValueError("network.max_concurrent_probes must be a positive integer")

    lights = network.get('lights')
    if lights is not None and not isinstance(lights, list):
        raise ValueError("network.lights must be a list of IP addresses")

    # Validate rhythm section if present
    if 'rhythm' in config:
        _validate_rhythm(config['rhythm'] or {})

def _validate_rhythm(rhythm_config: Dict) -> None:
    """Validate rhythm palette entries; bpm outside 60-200 is only warned about (it is clamped)"""
    palette = rhythm_config.get('palette')
    if palette is not None:
        if not isinstance(palette, list) or not palette:
            raise ValueError("rhythm.palette must be a non-empty list of {r, g, b} colours")
        for color in palette:
            if not isinstance(color, dict) or not all(channel in color for channel in ('r', 'g', 'b')):
                raise ValueError(f"Invalid palette colour: {color}")

    bpm = rhythm_config.get('default_bpm')
    if isinstance(bpm, (int, float)) and not 60 <= bpm <= 200:
        logger.warning(f"rhythm.default_bpm {bpm} outside 60-200 and will be clamped")

def _apply_defaults(config: Dict) -> Dict:
    """Apply default values to configuration"""

    # Network defaults
    if config['network'] is None:
        config['network'] = {}
    network_defaults = {
        'subnet_broadcast': 'auto',
        'udp_port': 38899,
        'discovery_timeout': 5.0,
        'broadcast_interval': 0.5,
        'probe_timeout': 1.0,
        'max_concurrent_probes': 254,
        'discover_on_startup': True,
        'auto_add_discovered': True,
        'lights': []
    }
    for key, default_value in network_defaults.items():
        if key not in config['network']:
            config['network'][key] = default_value

    # Rhythm defaults
    if not config.get('rhythm'):
        config['rhythm'] = {}
    rhythm_defaults = {
        'default_bpm': 120,
        'default_effect': 'pulse'
    }
    for key, default_value in rhythm_defaults.items():
        if key not in config['rhythm']:
            config['rhythm'][key] = default_value

    # Logging defaults
    if not config.get('logging'):
        config['logging'] = {}
    logging_defaults = {
        'level': 'INFO',
        'file': 'logs/wiz_controller.log',
        'console_output': True,
        'timezone': 'UTC'
    }
    for key, default_value in logging_defaults.items():
        if key not in config['logging']:
            config['logging'][key] = default_value

    return config


class TimezoneFormatter(logging.Formatter):
    """Formatter that renders timestamps in a configured timezone"""

    def __init__(self, fmt=None, timezone: str = 'UTC'):
        super().__init__(fmt)
        try:
            self.tz = pytz.timezone(timezone)
        except pytz.UnknownTimeZoneError:
            self.tz = pytz.utc

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, tz=self.tz)
        if datefmt:
            return dt.strftime(datefmt)
        else:
            # Default format: YYYY-MM-DD HH:MM:SS TZ
            return dt.strftime('%Y-%m-%d %H:%M:%S %Z')

def setup_logging(config: Dict) -> None:
    """Setup logging based on configuration with timezone-aware timestamps"""
    log_config = config.get('logging', {})
    level = log_config.get('level', 'INFO')

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = TimezoneFormatter(log_format, log_config.get('timezone', 'UTC'))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper()))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    # Console handler
    if log_config.get('console_output', True):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    # File handler
    log_file = log_config.get('file')
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    logger.info(f"Logging configured: level={level}, timezone={formatter.tz.zone}, "
                f"console={log_config.get('console_output', True)}, file={log_file}")

def get_sample_config() -> Dict:
    """Return a sample configuration for reference"""
    return {
        "network": {
            "subnet_broadcast": "auto",
            "udp_port": 38899,
            "discovery_timeout": 5.0,
            "broadcast_interval": 0.5,
            "probe_timeout": 1.0,
            "max_concurrent_probes": 64,
            "discover_on_startup": True,
            "auto_add_discovered": True,
            "lights": ["192.168.1.50"]
        },
        "rhythm": {
            "default_bpm": 120,
            "default_effect": "pulse",
            "palette": [
                {"r": 255, "g": 0, "b": 0},
                {"r": 0, "g": 255, "b": 0},
                {"r": 0, "g": 0, "b": 255}
            ]
        },
        "logging": {
            "level": "INFO",
            "file": "logs/wiz_controller.log",
            "console_output": True,
            "timezone": "America/New_York"
        }
    }
