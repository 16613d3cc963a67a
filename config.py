"""
config.py - System Configuration Settings
==========================================
Central configuration for the VM placement engine.
"""

import os
from pathlib import Path
from typing import Dict, Any


class Config:
    """System-wide configuration settings."""
    
    # ============================================================================
    # PATH CONFIGURATION
    # ============================================================================
    
    BASE_DIR = Path(__file__).parent
    
    # ============================================================================
    # SOLVER CONFIGURATION
    # ============================================================================
    
    SOLVER = {
        'time_limit': 30.0,         # seconds, None for no limit
        'node_limit': None,         # branching decisions, None for no limit
        'symmetry_breaking': True,  # order slots by non-increasing offer id
        'queue_strategy': 'fifo',   # propagation queue: fifo or lifo
        'value_order': 'price',     # offer order when branching on slot type
        'verify_incumbents': False  # re-check every incumbent during search
    }
    
    # ============================================================================
    # PERFORMANCE CONFIGURATION
    # ============================================================================
    
    PERFORMANCE = {
        'parallel': {
            'enabled': False,
            'max_workers': min(4, os.cpu_count() or 1),
            'split_depth': 1  # decision levels expanded before dispatching subtrees
        }
    }
    
    # ============================================================================
    # APPLICATION TOPOLOGY
    # ============================================================================
    
    # Requirement and capacity vectors are (cpu cores, memory GB, storage x10GB)
    TOPOLOGY = {
        'dimensions': ['cpu', 'memory', 'storage'],
        'slots': 6,
        'components': {
            'balancer': [1, 2, 1],
            'worker_a': [2, 4, 2],
            'worker_b': [2, 2, 2],
            'agent': [1, 1, 1],
            'gateway': [2, 4, 2],
            'security': [1, 2, 1]
        },
        'offers': {
            'small': {'capacities': [2, 4, 2], 'price': 5},
            'medium': {'capacities': [4, 8, 4], 'price': 9},
            'large': {'capacities': [8, 16, 8], 'price': 16}
        },
        'balancer': 'balancer',
        'workers': ['worker_a', 'worker_b'],
        'min_workers': 3,
        'balancer_exclusions': ['worker_a', 'worker_b', 'gateway', 'security'],
        'agent': 'agent',
        'gateway': 'gateway',
        'security': 'security',
        'agents_per_gateway': 10
    }
    
    # ============================================================================
    # LOGGING CONFIGURATION
    # ============================================================================
    
    LOGGING = {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        'date_format': '%Y-%m-%d %H:%M:%S',
        'file': None,
        'max_bytes': 10 * 1024 * 1024,  # 10 MB
        'backup_count': 5,
        'console_output': True
    }
    
    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key."""
        keys = key.split('.')
        value = cls
        
        for k in keys:
            if isinstance(value, dict):
                if k not in value:
                    return default
                value = value[k]
            elif hasattr(value, k):
                value = getattr(value, k)
            else:
                return default
        
        return value
    
    @classmethod
    def set(cls, key: str, value: Any):
        """Set configuration value by dot-notation key."""
        keys = key.split('.')
        target = cls
        
        for k in keys[:-1]:
            if isinstance(target, dict) and k in target:
                target = target[k]
            elif not isinstance(target, dict) and hasattr(target, k):
                target = getattr(target, k)
            else:
                raise KeyError(f"Configuration key not found: {key}")
        
        final_key = keys[-1]
        if isinstance(target, dict):
            target[final_key] = value
        elif hasattr(target, final_key):
            setattr(target, final_key, value)
        else:
            raise KeyError(f"Cannot set configuration key: {key}")
    
    @classmethod
    def to_dict(cls) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        result = {}
        
        for attr in dir(cls):
            if not attr.startswith('_') and attr.isupper():
                value = getattr(cls, attr)
                if not callable(value):
                    result[attr] = value
        
        return result
    
    @classmethod
    def from_file(cls, filepath: str):
        """Load configuration from JSON or YAML file."""
        import json
        
        with open(filepath, 'r') as f:
            if filepath.endswith('.json'):
                config_data = json.load(f)
            elif filepath.endswith(('.yml', '.yaml')):
                import yaml
                config_data = yaml.safe_load(f)
            else:
                raise ValueError(f"Unsupported config file format: {filepath}")
        
        for key, value in (config_data or {}).items():
            if not hasattr(cls, key):
                continue
            current = getattr(cls, key)
            # Sections are merged so a file may override a single setting
            if isinstance(current, dict) and isinstance(value, dict):
                current.update(value)
            else:
                setattr(cls, key, value)
    
    @classmethod
    def save_to_file(cls, filepath: str):
        """Save configuration to JSON or YAML file."""
        import json
        
        config_data = cls.to_dict()
        
        with open(filepath, 'w') as f:
            if filepath.endswith('.json'):
                json.dump(config_data, f, indent=2, default=str)
            elif filepath.endswith(('.yml', '.yaml')):
                import yaml
                yaml.safe_dump(json.loads(json.dumps(config_data, default=str)), f,
                               default_flow_style=False)
            else:
                raise ValueError(f"Unsupported config file format: {filepath}")
