"""
utils.py - Utility Functions and Helpers
=========================================
Common utility functions used throughout the system.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union
import numpy as np
from functools import wraps
import time


logger = logging.getLogger(__name__)


# ============================================================================
# FILE OPERATIONS
# ============================================================================

def ensure_directory(path: Union[str, Path]) -> Path:
    """Ensure directory exists, create if necessary."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _json_default(value: Any) -> Any:
    """Serialize numpy scalars and arrays."""
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    return str(value)


def save_json(data: Dict, filepath: Union[str, Path], indent: int = 2):
    """Save data to JSON file."""
    filepath = Path(filepath)
    ensure_directory(filepath.parent)
    
    with open(filepath, 'w') as f:
        json.dump(data, f, indent=indent, default=_json_default)
    
    logger.debug(f"Saved JSON to {filepath}")


def load_json(filepath: Union[str, Path]) -> Dict:
    """Load data from JSON file."""
    filepath = Path(filepath)
    
    if not filepath.exists():
        raise FileNotFoundError(f"JSON file not found: {filepath}")
    
    with open(filepath, 'r') as f:
        data = json.load(f)
    
    logger.debug(f"Loaded JSON from {filepath}")
    return data


def load_yaml(filepath: Union[str, Path]) -> Dict:
    """Load data from YAML file."""
    import yaml
    
    filepath = Path(filepath)
    
    if not filepath.exists():
        raise FileNotFoundError(f"YAML file not found: {filepath}")
    
    with open(filepath, 'r') as f:
        data = yaml.safe_load(f)
    
    logger.debug(f"Loaded YAML from {filepath}")
    return data or {}


def load_instance(filepath: Union[str, Path]):
    """Load a ProblemInstance from a JSON or YAML file."""
    from models import ProblemInstance
    
    filepath = Path(filepath)
    if filepath.suffix in ('.yml', '.yaml'):
        data = load_yaml(filepath)
    elif filepath.suffix == '.json':
        data = load_json(filepath)
    else:
        raise ValueError(f"Unsupported instance file format: {filepath}")
    
    instance = ProblemInstance.from_dict(data)
    logger.info(f"Loaded instance '{instance.name}': {instance.component_count} components, "
                f"{instance.offer_count} offers, {instance.slot_count} slots")
    return instance


# ============================================================================
# PERFORMANCE UTILITIES
# ============================================================================

def timer(func):
    """Decorator to time function execution."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        start = time.time()
        result = func(*args, **kwargs)
        end = time.time()
        logger.debug(f"{func.__name__} took {end - start:.2f} seconds")
        return result
    return wrapper


# ============================================================================
# LOGGING UTILITIES
# ============================================================================

def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Setup logging configuration."""
    from config import Config
    
    log_config = Config.LOGGING
    
    # Set log level
    level = getattr(logging, log_level.upper(), logging.INFO)
    
    # Create formatter
    formatter = logging.Formatter(
        log_config['format'],
        datefmt=log_config['date_format']
    )
    
    # Setup handlers
    handlers = []
    
    # Console handler
    if log_config.get('console_output', True):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)
    
    # File handler
    if log_file or log_config.get('file'):
        file_path = log_file or log_config['file']
        ensure_directory(Path(file_path).parent)
        
        from logging.handlers import RotatingFileHandler
        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=log_config.get('max_bytes', 10*1024*1024),
            backupCount=log_config.get('backup_count', 5)
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)
    
    # Configure root logger
    logging.basicConfig(
        level=level,
        handlers=handlers,
        force=True
    )
    
    logger.info(f"Logging configured: level={log_level}")
