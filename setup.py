"""
setup.py - Package Installation Configuration
==============================================
"""

from setuptools import setup
from pathlib import Path

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
if readme_file.exists():
    long_description = readme_file.read_text()
else:
    long_description = "VM Placement Branch & Bound Engine"

requirements = [
    'numpy>=1.21.0',
    'PyYAML>=5.4',
]

setup(
    name='vm-placement-engine',
    version='1.0.0',
    author='VM Placement Team',
    description='Minimum-cost placement of application components onto VM offers by branch and bound',
    long_description=long_description,
    long_description_content_type='text/markdown',
    py_modules=[
        'bb_bounding_functions',
        'bb_constraint_model',
        'bb_constraint_propagation',
        'bb_parallel',
        'bb_search_strategies',
        'bb_search_tree',
        'bb_symmetry_breaking',
        'bb_variable_store',
        'config',
        'instance_validation',
        'main',
        'models',
        'placement_solver',
        'solution_validation',
        'time_management',
        'topology',
        'utils',
    ],
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Intended Audience :: System Administrators',
        'Topic :: Scientific/Engineering :: Mathematics',
        'Topic :: System :: Distributed Computing',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.8',
    install_requires=requirements,
    extras_require={
        'dev': [
            'pytest>=6.2.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'vm-placement=main:main',
        ],
    },
    zip_safe=False,
)
