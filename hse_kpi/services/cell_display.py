"""Effective display value of a grid cell.

The interactive grid and the monitoring-plan export pick between a cell's
text, numeric value and status in different orders. Both orders are kept as
separate named functions; neither is the canonical one. Callers choose the
projection that matches the surface they render.

A "cell" is anything exposing ``status``, ``numeric_value`` and
``text_value`` either as attributes (KpiValue) or as dict keys (grid cells).
"""


def _field(cell, name):
    if cell is None:
        return None
    if isinstance(cell, dict):
        return cell.get(name)
    return getattr(cell, name, None)


def format_number(value):
    """Render a float without a trailing ``.0`` when it is integral."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def grid_display_value(cell) -> str:
    """Grid order: text value, then numeric value, else empty."""
    text = _field(cell, "text_value")
    if text:
        return text
    number = _field(cell, "numeric_value")
    if number is not None:
        return str(format_number(number))
    return ""


def export_display_value(cell):
    """Export order: numeric value, then status, then text value, else empty.

    Numbers are returned as numbers (integral floats as int) so the
    spreadsheet cell is numeric.
    """
    number = _field(cell, "numeric_value")
    if number is not None:
        return format_number(number)
    status = _field(cell, "status")
    if status:
        return status
    text = _field(cell, "text_value")
    if text:
        return text
    return ""
