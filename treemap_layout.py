import logging
import math

logger = logging.getLogger(__name__)

# Leftover rectangles this thin (in container units) stop the partitioning
MIN_PARTITION_DIMENSION = 0.01

# |change| at which tile color reaches full intensity (-3%..+3%)
COLOR_SATURATION_CHANGE = 3.0

COLOR_HUE_UP = 140
COLOR_HUE_DOWN = 0
COLOR_SATURATION = 75


class InvalidWeightError(ValueError):
    """Raised when an item's weight is negative, NaN, infinite or not a number."""


def _fmt(value):
    # 32.0 -> "32", 26.000000000000004 stays as is
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return repr(value) if isinstance(value, float) else str(value)


def color_for(change):
    """
    Tile color from a percent change.
    Green for growth, red for decline; the bigger the move the darker the tile.
    """
    magnitude = abs(change) / COLOR_SATURATION_CHANGE
    if magnitude > 1:
        magnitude = 1.0
    hue = COLOR_HUE_UP if change >= 0 else COLOR_HUE_DOWN
    lightness = 20 + (1 - magnitude) * 12
    return f"hsl({hue} {COLOR_SATURATION}% {_fmt(lightness)}%)"


def worst_ratio(row, total, width, height):
    """
    Worst (furthest from 1) aspect ratio of the tiles in a candidate row.
    row: weights of the candidate row
    total: weight of everything still to be placed in this rect
    """
    row_value = sum(row)
    if row_value <= 0 or total <= 0:
        return 0.0

    is_horizontal = width >= height
    row_fraction = row_value / total
    # strip thickness and the side it gets divided along
    row_size = (width if is_horizontal else height) * row_fraction
    side = height if is_horizontal else width
    if row_size <= 0:
        return math.inf

    worst = 0.0
    for weight in row:
        item_size = side * (weight / row_value)
        if item_size <= 0:
            continue
        ratio = max(row_size / item_size, item_size / row_size)
        if ratio > worst:
            worst = ratio
    return worst


def select_row(weights, width, height):
    """
    How many of the leading weights (sorted descending) go into the next row.
    Greedy: keep growing while the worst ratio does not get worse.
    """
    if len(weights) <= 1:
        return len(weights)

    total = sum(weights)
    best_worst = math.inf
    count = 0
    for i in range(1, len(weights) + 1):
        worst = worst_ratio(weights[:i], total, width, height)
        if worst <= best_worst:
            best_worst = worst
            count = i
        else:
            break
    return count


def _layout_row(row, weights, rect, total, results):
    """Cut the row strip off rect, split it among the row, return the leftover rect."""
    x, y, w, h = rect
    row_value = sum(weights)
    row_fraction = row_value / total

    if w >= h:
        # wide rect -> vertical strip on the left, tiles stacked top to bottom
        row_width = w * row_fraction
        offset = 0.0
        for node, weight in zip(row, weights):
            tile_h = h * (weight / row_value)
            results.append((node, (x, y + offset, row_width, tile_h)))
            offset += tile_h
        return (x + row_width, y, w - row_width, h)

    # tall rect -> horizontal strip on top, tiles left to right
    row_height = h * row_fraction
    offset = 0.0
    for node, weight in zip(row, weights):
        tile_w = w * (weight / row_value)
        results.append((node, (x + offset, y, tile_w, row_height)))
        offset += tile_w
    return (x, y + row_height, w, h - row_height)


def squarify(nodes, rect, results, min_dimension=MIN_PARTITION_DIMENSION):
    """
    Squarified treemap main loop.
    nodes: [(weight, item), ...] sorted by weight, descending
    rect: (x, y, w, h)
    results: list that receives (item, (x, y, w, h)) pairs
    """
    remaining = list(nodes)
    while remaining:
        if len(remaining) == 1:
            results.append((remaining[0][1], rect))
            return

        weights = [weight for weight, _ in remaining]
        top = max(weights)
        if top <= 0:
            # nothing left to compare, share the space evenly
            weights = [1.0] * len(remaining)
        else:
            # relative to the biggest so huge weights cannot overflow the sums
            weights = [weight / top for weight in weights]

        _, _, w, h = rect
        count = select_row(weights, w, h)
        row = [item for _, item in remaining[:count]]
        rect = _layout_row(row, weights[:count], rect, sum(weights), results)
        remaining = remaining[count:]

        _, _, w, h = rect
        if remaining and (w <= min_dimension or h <= min_dimension):
            logger.debug("Leftover rect %.4f x %.4f too small, dropping %d items", w, h, len(remaining))
            return


def _checked_weight(item, weight_key):
    weight = item.get(weight_key, 0)
    if isinstance(weight, bool) or not isinstance(weight, (int, float)):
        try:
            weight = float(weight)
        except (TypeError, ValueError):
            raise InvalidWeightError(f"{item.get('id', item)!r}: weight {weight!r} is not a number") from None
    if not math.isfinite(weight) or weight < 0:
        raise InvalidWeightError(f"{item.get('id', item)!r}: weight {weight!r} must be finite and >= 0")
    return float(weight)


def build_layout(items, x=0.0, y=0.0, width=100.0, height=100.0,
                 weight_key='weight', change_key='change',
                 min_dimension=MIN_PARTITION_DIMENSION):
    """
    Lay out items as a squarified treemap inside (x, y, width, height).
    items: [{'id': ..., 'weight': 120.0, 'change': -1.5, ...}, ...]
    Returns new dicts with every original key plus x, y, width, height, color,
    in placement order. Items squeezed out by the min_dimension guard are absent.
    """
    if not items:
        return []

    nodes = [(_checked_weight(item, weight_key), item) for item in items]

    if width <= 0 or height <= 0:
        logger.warning("Container %sx%s has no area, nothing laid out", width, height)
        return []

    # Squarify needs biggest first; sort is stable so ties keep input order
    nodes.sort(key=lambda node: node[0], reverse=True)

    placed = []
    squarify(nodes, (x, y, width, height), placed, min_dimension=min_dimension)

    result = []
    for item, (rx, ry, rw, rh) in placed:
        tile = dict(item)
        tile.update({
            'x': rx,
            'y': ry,
            'width': rw,
            'height': rh,
            'color': color_for(item.get(change_key, 0)),
        })
        result.append(tile)

    if len(result) < len(items):
        logger.debug("%d of %d items did not fit", len(items) - len(result), len(items))
    return result


def build_grouped_layout(items, x=0.0, y=0.0, width=100.0, height=100.0,
                         group_key='sector', weight_key='weight', change_key='change',
                         min_dimension=MIN_PARTITION_DIMENSION):
    """
    Two-level layout: groups first (sized by their total weight), then each
    group's items inside the group's rectangle.
    Returns group dicts: {'group', 'weight', 'change', x, y, width, height, 'color', 'tiles'}
    """
    groups = {}
    for item in items:
        groups.setdefault(item.get(group_key, "Unknown"), []).append(item)

    group_data = []
    for name, members in groups.items():
        total_w = sum(_checked_weight(m, weight_key) for m in members)
        # group change is the weight-averaged change of its members
        if total_w > 0:
            avg_change = sum(m.get(change_key, 0) * _checked_weight(m, weight_key) for m in members) / total_w
        else:
            avg_change = 0.0
        group_data.append({'group': name, 'weight': total_w, 'change': avg_change, 'members': members})
    group_data.sort(key=lambda g: (g['weight'], str(g['group'])), reverse=True)

    group_rects = build_layout(group_data, x, y, width, height,
                               weight_key='weight', change_key='change',
                               min_dimension=min_dimension)

    result = []
    for g in group_rects:
        members = g.pop('members')
        g['tiles'] = build_layout(members, g['x'], g['y'], g['width'], g['height'],
                                  weight_key=weight_key, change_key=change_key,
                                  min_dimension=min_dimension)
        result.append(g)
    return result


def snap_rect(tile, scale_x, scale_y, bound_w, bound_h, min_size=2):
    """
    Float tile geometry -> integer pixel geometry (ix, iy, iw, ih).
    Width is round(x + w) - round(x) so neighbours share edges without gaps.
    """
    left, top = tile['x'] * scale_x, tile['y'] * scale_y
    right = (tile['x'] + tile['width']) * scale_x
    bottom = (tile['y'] + tile['height']) * scale_y

    ix, iy = round(left), round(top)
    iw = round(right) - ix
    ih = round(bottom) - iy

    # tiles ending within a pixel of the edge get pulled onto it
    if ix + iw >= bound_w - 1:
        iw = max(iw, bound_w - ix)
    if iy + ih >= bound_h - 1:
        ih = max(ih, bound_h - iy)

    iw, ih = max(iw, min_size), max(ih, min_size)
    # slivers widened to min_size must not hang past the edge
    ix = max(0, min(ix, bound_w - iw))
    iy = max(0, min(iy, bound_h - ih))
    return ix, iy, iw, ih
