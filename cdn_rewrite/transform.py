"""Transformation string building for CDN Rewrite.

Maps sizing configuration onto the ordered parameter string that Cloudinary
reads from a delivery URL.
"""

from typing import Any, Mapping

from .models import MaxSize, TransformationSpec


DEFAULT_CROP = "limit"

# Sizing parameters in lexical order of their prefix letter
SIZING_FIELDS = (
    ("dpr", "dpr"),
    ("h", "height"),
    ("w", "width"),
)


def coerce_max_size(value: MaxSize | Mapping[str, Any] | None) -> MaxSize | None:
    """Accept a MaxSize or the raw maxSize mapping from inputs.

    Args:
        value: MaxSize instance, mapping with width/height/dpr/crop, or None

    Returns:
        MaxSize or None when no mapping was given
    """
    if value is None or isinstance(value, MaxSize):
        return value

    return MaxSize(
        width=value.get("width"),
        height=value.get("height"),
        dpr=value.get("dpr"),
        crop=value.get("crop"),
    )


def build_transformation(max_size: MaxSize | Mapping[str, Any] | None = None) -> TransformationSpec:
    """Build the transformation spec for a run.

    The result always starts with f_auto,q_auto. When any sizing field is set,
    a second group follows with c_<crop>, dpr_<dpr>, h_<height>, w_<width>,
    each present only if its source value is defined. Values are passed
    through verbatim; the CDN rejects malformed ones.

    Args:
        max_size: Sizing constraints (MaxSize or raw mapping)

    Returns:
        TransformationSpec with a stable parameter order
    """
    size = coerce_max_size(max_size)

    if size is None or not size.has_sizing:
        return TransformationSpec()

    sizing = [f"c_{size.crop or DEFAULT_CROP}"]
    for prefix, attr in SIZING_FIELDS:
        value = getattr(size, attr)
        if value is not None:
            sizing.append(f"{prefix}_{value}")

    return TransformationSpec(sizing=tuple(sizing))
