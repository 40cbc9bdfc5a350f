"""
Timeline layout configuration.

Row geometry must stay in step with the rendered stage rows: each row is a
64px bar area plus 24px spacing, inside a container with 16px top padding.
"""


class TimelineConfig:
    """
    Fixed parameters for the timeline layout engine.
    """

    # Axis padding around the earliest/latest date
    LEAD_IN_DAYS: int = 7
    TRAILING_DAYS: int = 14

    # Minimum bar width so same-day stages stay visible and clickable
    MIN_WIDTH_PERCENT: float = 0.5

    # Vertical row mapping (px)
    ROW_HEIGHT: int = 88
    TOP_OFFSET: int = 16
    BAR_OFFSET_Y: int = 12

    # Dependency arcs attach this far below the row's bar center (px)
    ARC_ANCHOR_OFFSET: int = 12

    # Horizontal distance of the cubic control points from each endpoint (px)
    CONTROL_POINT_OFFSET: int = 20

    @classmethod
    def row_y(cls, row: int) -> int:
        """Vertical pixel position of a row's bar center."""
        return cls.TOP_OFFSET + row * cls.ROW_HEIGHT + cls.BAR_OFFSET_Y
