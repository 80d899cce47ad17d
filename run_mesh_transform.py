"""
Driver script for transforming an ExodusII mesh.

Reads configuration from a JSON file and applies an ordered list of
operations (translate, rotate, scale, mirror, scale_field, zero_time,
copy_mirror_merge) to a copy of the input mesh.

Operations before the first copy_mirror_merge are applied to the output
file in place. A copy_mirror_merge loads the current state into memory;
it and every later operation work on that in-memory mesh, which is
written once at the end.

Usage:
    python run_mesh_transform.py config_mesh_transform.json
    python run_mesh_transform.py --config config_mesh_transform.json
"""

import argparse
import json
import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Dict, Any, List, Optional

sys.path.insert(0, str(Path(__file__).parent / 'src'))

from copy_mirror_merge import DEFAULT_TOLERANCE, copy_mirror_merge
from exodus_container import PerformanceConfig
from exodus_database import ExodusAppender
from mesh_snapshot import MeshSnapshot
from mesh_transforms import apply_operations


# op name -> (required keys, optional keys with defaults)
OPERATION_KEYS = {
    'translate': (['offset'], {}),
    'rotate': (['sequence', 'angles'], {'degrees': True}),
    'scale': ([], {'factor': None, 'factors': None}),
    'mirror': (['axis'], {}),
    'scale_field': (['name', 'factor'], {}),
    'zero_time': ([], {}),
    'copy_mirror_merge': (['axis'], {'tolerance': DEFAULT_TOLERANCE,
                                     'vector_fields': []}),
}


def load_config(config_path: str) -> Dict[str, Any]:
    """Load configuration from a JSON file."""
    with open(config_path, 'r') as f:
        config = json.load(f)
    return config


def validate_operation(op: Dict[str, Any], index: int) -> Dict[str, Any]:
    """Check one entry of the operations list and fill in its defaults."""
    if 'op' not in op:
        raise ValueError(f"operations[{index}].op is required")
    name = op['op']
    if name not in OPERATION_KEYS:
        raise ValueError(
            f"operations[{index}].op must be one of "
            f"{sorted(OPERATION_KEYS)}, got '{name}'"
        )

    required, defaults = OPERATION_KEYS[name]
    for key in required:
        if key not in op:
            raise ValueError(f"operations[{index}].{key} is required for '{name}'")
    for key, value in defaults.items():
        op.setdefault(key, value)

    if name == 'scale' and (op['factor'] is None) == (op['factors'] is None):
        raise ValueError(
            f"operations[{index}]: 'scale' needs exactly one of "
            f"'factor' or 'factors'"
        )
    if name in ('mirror', 'copy_mirror_merge') and \
            str(op['axis']).lower() not in ('x', 'y', 'z'):
        raise ValueError(
            f"operations[{index}].axis must be 'x', 'y' or 'z', "
            f"got '{op['axis']}'"
        )
    return op


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and fill in default values for configuration.

    Required fields:
    - input.exodus_file
    - output.exodus_file
    - operations: non-empty list of {"op": ..., ...}

    Optional fields with defaults:
    - output.overwrite: False
    - performance: {} (netCDF defaults)
    """
    for section in ['input', 'output']:
        if section not in config:
            raise ValueError(f"Configuration must have '{section}' section")
        if 'exodus_file' not in config[section]:
            raise ValueError(f"{section}.exodus_file is required")

    if not os.path.exists(config['input']['exodus_file']):
        raise ValueError(f"File not found: {config['input']['exodus_file']}")

    config['output'].setdefault('overwrite', False)
    if os.path.abspath(config['input']['exodus_file']) == \
            os.path.abspath(config['output']['exodus_file']):
        raise ValueError("output.exodus_file must differ from input.exodus_file")

    operations = config.get('operations')
    if not isinstance(operations, list) or not operations:
        raise ValueError("Configuration must have a non-empty 'operations' list")
    config['operations'] = [validate_operation(op, i)
                            for i, op in enumerate(operations)]

    config.setdefault('performance', {})
    PerformanceConfig.from_dict(config['performance'])

    return config


def to_operation(op: Dict[str, Any]):
    """Translate one validated config entry to an ``(name, args)`` pair."""
    name = op['op']
    if name == 'translate':
        return 'translate', (op['offset'],)
    if name == 'rotate':
        return 'rotate', (op['sequence'], op['angles'], op['degrees'])
    if name == 'scale':
        if op['factor'] is not None:
            return 'scale_uniform', (op['factor'],)
        return 'scale', (op['factors'],)
    if name == 'mirror':
        return 'mirror', (op['axis'],)
    if name == 'scale_field':
        return 'scale_field', (op['name'], op['factor'])
    return 'zero_time', ()


def run_mesh_transform(config: Dict[str, Any]) -> None:
    """
    Main workflow: copy the input, apply operations, write the result.
    """
    input_file = config['input']['exodus_file']
    output_file = config['output']['exodus_file']
    performance = PerformanceConfig.from_dict(config['performance'])
    operations: List[Dict[str, Any]] = config['operations']

    if os.path.exists(output_file) and not config['output']['overwrite']:
        raise FileExistsError(
            f"{output_file} exists; set output.overwrite to replace it")

    shutil.copy2(input_file, output_file)
    print(f"Copied {input_file} -> {output_file}")

    snapshot: Optional[MeshSnapshot] = None
    pending = []
    for op in operations:
        if op['op'] == 'copy_mirror_merge':
            if snapshot is None:
                with ExodusAppender(output_file, performance) as db:
                    apply_operations(db, pending)
                    snapshot = MeshSnapshot.load(db)
            else:
                apply_operations(snapshot, pending)
            pending = []
            print(f"\nCopy-mirror-merge about {op['axis']} "
                  f"(tolerance={op['tolerance']})")
            snapshot = copy_mirror_merge(snapshot, op['axis'], op['tolerance'],
                                         op['vector_fields'])
            print(f"  {snapshot.num_nodes} nodes, {snapshot.num_elems} elements")
        else:
            print(f"\nQueued operation: {op['op']}")
            pending.append(to_operation(op))

    if snapshot is None:
        with ExodusAppender(output_file, performance) as db:
            apply_operations(db, pending)
    else:
        apply_operations(snapshot, pending)
        snapshot.write(output_file, clobber=True, performance=performance)

    print(f"\nTransformed mesh written to: {output_file}")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Apply transformations to an ExodusII mesh'
    )
    parser.add_argument(
        'config',
        nargs='?',
        default='config_mesh_transform.json',
        help='Path to configuration JSON file '
             '(default: config_mesh_transform.json)'
    )
    parser.add_argument(
        '--config', '-c',
        dest='config_flag',
        help='Alternative way to specify config file'
    )

    args = parser.parse_args()
    config_path = args.config_flag if args.config_flag else args.config
    logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')

    print(f"Loading configuration from: {config_path}")
    config = load_config(config_path)
    config = validate_config(config)

    print("\n" + "=" * 60)
    print("ExodusII Mesh Transformation")
    print("=" * 60)

    run_mesh_transform(config)

    print("\n" + "=" * 60)
    print("Transformation complete!")
    print("=" * 60)

    return 0


if __name__ == '__main__':
    exit(main())
