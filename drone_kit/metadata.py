from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from .tensor import TensorLayout


@dataclass(frozen=True)
class ModelMetadata:
    input_size: Optional[int] = None
    input_layout: Optional[TensorLayout] = None


def _parse_imgsz(value: str) -> Optional[int]:
    # "640" or "[640, 640]"
    parts = [p.strip() for p in value.strip("[]() ").split(",") if p.strip()]
    if not parts or not all(p.isdigit() for p in parts):
        return None
    sizes = {int(p) for p in parts}
    if len(sizes) != 1:
        return None
    return sizes.pop()


def load_model_metadata(metadata_path: Union[str, Path]) -> ModelMetadata:
    """
    Read the declared input size and layout from a model's metadata sidecar.

    Understands the flat top-level keys of an Ultralytics `metadata.yaml`, plus
    an explicit layout key added next to it:

        imgsz: [640, 640]
        layout: nchw

    Block-style lists as written by `yaml.safe_dump` are read as well:

        imgsz:
        - 640
        - 640

    Other keys and nested blocks are ignored. This function intentionally avoids
    adding a PyYAML dependency.
    """

    input_size: Optional[int] = None
    input_layout: Optional[TensorLayout] = None
    # Items of a block-style `imgsz:` list, while one is being read.
    imgsz_items: Optional[List[str]] = None

    with open(metadata_path, "r", encoding="utf-8") as f:
        for raw in f:
            if not raw.strip() or raw.lstrip().startswith("#"):
                continue

            item = raw.split("#", 1)[0].strip()
            if imgsz_items is not None:
                if item.startswith("-"):
                    imgsz_items.append(item[1:].strip())
                    continue
                input_size = _parse_imgsz(",".join(imgsz_items))
                imgsz_items = None

            if raw[0].isspace() or ":" not in raw:
                continue

            key, value = raw.split(":", 1)
            key = key.strip()
            value = value.split("#", 1)[0].strip().strip("'").strip('"')
            if key == "imgsz":
                if value:
                    input_size = _parse_imgsz(value)
                else:
                    imgsz_items = []
            elif key in ("layout", "input_layout") and value:
                input_layout = TensorLayout.parse(value)

    if imgsz_items is not None:
        input_size = _parse_imgsz(",".join(imgsz_items))

    return ModelMetadata(input_size=input_size, input_layout=input_layout)


def find_metadata(model_path: Union[str, Path]) -> Optional[Path]:
    """
    Sidecar lookup: `<model>.yaml` first, then `metadata.yaml` in the model's directory.
    """

    model_path = Path(model_path)
    for candidate in (model_path.with_suffix(".yaml"), model_path.parent / "metadata.yaml"):
        if candidate.is_file():
            return candidate
    return None
