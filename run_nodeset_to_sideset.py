"""
Driver script for deriving an ExodusII sideset from a nodeset.

Reads configuration from a JSON file, selects the boundary faces whose
nodes all belong to the nodeset, and adds them to the database as a new
sideset. The input file is updated in place unless output.exodus_file
names a copy to write instead.

Usage:
    python run_nodeset_to_sideset.py config_nodeset_to_sideset.json
    python run_nodeset_to_sideset.py --config config_nodeset_to_sideset.json
"""

import argparse
import json
import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Dict, Any

sys.path.insert(0, str(Path(__file__).parent / 'src'))

from exodus_database import ExodusAppender
from exodus_schema import EntityKind
from sideset_derivation import create_sideset_from_nodeset, sideset_face_geometry


def load_config(config_path: str) -> Dict[str, Any]:
    """Load configuration from a JSON file."""
    with open(config_path, 'r') as f:
        config = json.load(f)
    return config


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and fill in default values for configuration.

    Required fields:
    - input.exodus_file
    - input.nodeset_id

    Optional fields with defaults:
    - output.sideset_id: None (one more than the largest existing id)
    - output.sideset_name: None
    - output.exodus_file: None (update the input file in place)
    """
    if 'input' not in config:
        raise ValueError("Configuration must have 'input' section")

    input_cfg = config['input']
    for key in ['exodus_file', 'nodeset_id']:
        if key not in input_cfg:
            raise ValueError(f"input.{key} is required")

    if not os.path.exists(input_cfg['exodus_file']):
        raise ValueError(f"File not found: {input_cfg['exodus_file']}")

    if not isinstance(input_cfg['nodeset_id'], int):
        raise ValueError("input.nodeset_id must be an integer")

    if 'output' not in config:
        config['output'] = {}

    output_cfg = config['output']
    output_cfg.setdefault('sideset_id', None)
    output_cfg.setdefault('sideset_name', None)
    output_cfg.setdefault('exodus_file', None)

    if output_cfg['sideset_id'] is not None and \
            not isinstance(output_cfg['sideset_id'], int):
        raise ValueError("output.sideset_id must be an integer")

    return config


def run_nodeset_to_sideset(config: Dict[str, Any]) -> int:
    """
    Main workflow: derive the sideset and append it to the database.

    Returns the number of faces in the new sideset.
    """
    input_cfg = config['input']
    output_cfg = config['output']

    exodus_file = input_cfg['exodus_file']
    if output_cfg['exodus_file']:
        shutil.copy2(exodus_file, output_cfg['exodus_file'])
        print(f"Copied {exodus_file} -> {output_cfg['exodus_file']}")
        exodus_file = output_cfg['exodus_file']

    print(f"\nOpening ExodusII file: {exodus_file}")
    with ExodusAppender(exodus_file) as db:
        print(f"Mesh: {db.num_nodes} nodes, {db.num_elems} elements")
        print(f"Nodesets: {db.get_ids(EntityKind.NODE_SET)}")
        print(f"Sidesets: {db.get_ids(EntityKind.SIDE_SET)}")

        sideset = create_sideset_from_nodeset(
            db,
            input_cfg['nodeset_id'],
            new_sideset_id=output_cfg['sideset_id'],
            name=output_cfg['sideset_name']
        )
        print(f"\nSideset {sideset.id}: {len(sideset)} faces "
              f"from nodeset {input_cfg['nodeset_id']}")
        if len(sideset):
            _, areas = sideset_face_geometry(db, sideset.id)
            print(f"Total side area: {areas.sum():.6g}")

    print(f"\nSideset written to: {exodus_file}")
    return len(sideset)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Create an ExodusII sideset from a nodeset'
    )
    parser.add_argument(
        'config',
        nargs='?',
        default='config_nodeset_to_sideset.json',
        help='Path to configuration JSON file '
             '(default: config_nodeset_to_sideset.json)'
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
    print("Nodeset to Sideset Conversion")
    print("=" * 60)

    run_nodeset_to_sideset(config)

    print("\n" + "=" * 60)
    print("Conversion complete!")
    print("=" * 60)

    return 0


if __name__ == '__main__':
    exit(main())
