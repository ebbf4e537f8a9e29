from typing import NamedTuple


class Dimensions(NamedTuple):
    length: int
    width: int
    height: int


# (exclusive upper bound in kg, box size in cm); anything heavier gets the crate
_WEIGHT_BANDS = (
    (1, Dimensions(37, 23, 10)),
    (2, Dimensions(47, 34, 15)),
    (30, Dimensions(50, 38, 19)),
)
_OVERSIZE = Dimensions(100, 100, 100)


def dimensions_for_weight(weight_kg: float) -> Dimensions:
    """Map a parcel weight to the package size quoted to carriers.

    Lower bounds are inclusive: 1 kg lands in the second band, 30 kg in the last.
    """
    for upper_bound, dims in _WEIGHT_BANDS:
        if weight_kg < upper_bound:
            return dims
    return _OVERSIZE
