"""Print the input/output contract of each exported graph.

Useful when checking that a model directory matches the tensor names the
pipeline feeds (input_ids, past_key_values.*, use_cache_branch, ...).
"""
import argparse
import os

import openvino as ov

from poing.config import REQUIRED_MODEL_FILES, validate_model_dir


def inspect(model_dir):
    missing = validate_model_dir(model_dir)
    if missing:
        print(f"Missing files: {', '.join(missing)}")

    core = ov.Core()
    for name in REQUIRED_MODEL_FILES:
        if not name.endswith(".onnx") or name in missing:
            continue
        print(f"=== {name} ===")
        model = core.read_model(os.path.join(model_dir, name))
        print("Inputs:")
        for port in model.inputs:
            print(f"  {port.get_any_name()} : {port.get_element_type()} {port.get_partial_shape()}")
        print("Outputs:")
        for port in model.outputs:
            print(f"  {port.get_any_name()} : {port.get_element_type()} {port.get_partial_shape()}")
        print()


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("model_dir")
    args = parser.parse_args()
    inspect(args.model_dir)
