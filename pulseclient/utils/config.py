# Config - YAML + .env configuration loading
# Defaults, file overlay, environment overrides and validation

"""
Config Module

Sources, later ones win:
1. DEFAULT_CONFIG below
2. config/config.yaml (sections merged key by key)
3. config/client.env loaded into the environment, then
   PULSECLIENT_HOST / PULSECLIENT_PORT / PULSECLIENT_LOGIN_NAME
"""

import os
from copy import deepcopy
from pathlib import Path
from typing import List, Optional, Tuple

import yaml
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

DEFAULT_CONFIG = {
    'server': {
        'host': '127.0.0.1',
        'port': 3001,
        'login_name': 'coder1',
        'id_tag': 'pulse'
    },
    'connection': {
        'heartbeat_window': 2.0,
        'request_timeout': 5.0,
        'ready_retry_interval': 1.0,
        'ready_retry_attempts': 5,
        'reconnect_delay': 0.5,
        'max_reconnect_delay': 8.0,
        'max_reconnect_attempts': 5,
        'connect_timeout': 5.0
    },
    'logging': {
        'level': 'INFO',
        'session_log': 'logs/pulseclient.log'
    }
}


def load_config(
    config_path: Optional[Path] = None,
    env_path: Optional[Path] = None
) -> dict:
    """
    Load configuration from files and environment

    Args:
        config_path: YAML file (defaults to config/config.yaml)
        env_path: .env file (defaults to config/client.env)

    Returns:
        Configuration dictionary with every section of DEFAULT_CONFIG
    """
    config_path = config_path or PROJECT_ROOT / "config" / "config.yaml"
    env_path = env_path or PROJECT_ROOT / "config" / "client.env"

    load_dotenv(env_path)

    config = deepcopy(DEFAULT_CONFIG)
    if Path(config_path).exists():
        with open(config_path) as f:
            loaded = yaml.safe_load(f) or {}
        for section, values in loaded.items():
            if isinstance(values, dict) and isinstance(config.get(section), dict):
                config[section].update(values)
            else:
                config[section] = values

    server = config['server']
    if os.getenv('PULSECLIENT_HOST'):
        server['host'] = os.getenv('PULSECLIENT_HOST')
    if os.getenv('PULSECLIENT_PORT'):
        server['port'] = os.getenv('PULSECLIENT_PORT')
    if os.getenv('PULSECLIENT_LOGIN_NAME'):
        server['login_name'] = os.getenv('PULSECLIENT_LOGIN_NAME')

    # Environment values arrive as strings
    if isinstance(server.get('port'), str) and server['port'].isdigit():
        server['port'] = int(server['port'])

    return config


def validate_config(config: dict) -> Tuple[bool, List[str]]:
    """
    Validate configuration structure

    Returns:
        (is_valid, list of error messages)
    """
    errors = []

    for section in ('server', 'connection', 'logging'):
        if not isinstance(config.get(section), dict):
            errors.append(f"Config error: missing '{section}' section")
    if errors:
        return (False, errors)

    server = config['server']
    if not server.get('host'):
        errors.append("Config error: server.host must be set")
    port = server.get('port')
    if not isinstance(port, int) or not 0 < port < 65536:
        errors.append("Config error: server.port must be an integer between 1 and 65535")
    if not server.get('login_name'):
        errors.append("Config error: server.login_name must be set")
    if not server.get('id_tag'):
        errors.append("Config error: server.id_tag must be set")

    connection = config['connection']
    for key in ('heartbeat_window', 'request_timeout', 'ready_retry_interval',
                'reconnect_delay', 'max_reconnect_delay', 'connect_timeout'):
        value = connection.get(key)
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
            errors.append(f"Config error: connection.{key} must be a positive number")
    for key in ('ready_retry_attempts', 'max_reconnect_attempts'):
        value = connection.get(key)
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            errors.append(f"Config error: connection.{key} must be a positive integer")

    return (len(errors) == 0, errors)
