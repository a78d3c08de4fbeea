import argparse
import json
import logging
import math
import re
import sys

from PyQt5.QtWidgets import (QApplication, QWidget, QLabel, QVBoxLayout,
                             QFrame, QGraphicsDropShadowEffect, QToolTip)
from PyQt5.QtCore import Qt, QTimer, QPoint, pyqtSignal
from PyQt5.QtGui import QColor, QFont, QCursor

from heatmap_config import load_config, save_config
from heatmap_data import DEMO_PRODUCTS, build_heatmap_slide, load_products_csv
from treemap_layout import snap_rect

logger = logging.getLogger(__name__)

NEUTRAL_COLOR = "#2c2c34"
_HSL_RE = re.compile(r"hsl\(\s*([-\d.]+)\s+([-\d.]+)%\s+([-\d.]+)%\s*\)")


def hsl_to_hex(color):
    """'hsl(140 75% 32%)' -> '#148f3f' for Qt stylesheets (which want rgb/hex)."""
    match = _HSL_RE.fullmatch(color.strip()) if color else None
    if not match:
        return NEUTRAL_COLOR
    h, s, l = (float(v) for v in match.groups())
    qc = QColor.fromHslF((h % 360) / 360.0, min(max(s / 100.0, 0.0), 1.0), min(max(l / 100.0, 0.0), 1.0))
    return qc.name()


def format_change(change):
    return f"{change:+.1f}%" if change != 0 else "-"


class HeatmapCell(QFrame):
    def __init__(self, tile, parent=None):
        super().__init__(parent)
        self.tile = tile
        self.setObjectName("HeatmapCell")
        self.setMouseTracking(True)
        self.tooltip_timer = QTimer(self)
        self.tooltip_timer.setSingleShot(True)
        self.tooltip_timer.timeout.connect(self.show_custom_tooltip)
        self.setup_ui()

    def setup_ui(self):
        self.layout = QVBoxLayout(self)
        self.layout.setContentsMargins(0, 0, 0, 0)
        self.layout.setSpacing(0)
        self.layout.setAlignment(Qt.AlignCenter)

        self.label = QLabel(self.tile.get("label", ""))
        self.label.setAlignment(Qt.AlignCenter)
        self.change_label = QLabel("-")
        self.change_label.setAlignment(Qt.AlignCenter)
        self.name_label = QLabel(self.tile.get("name", ""))
        self.name_label.setAlignment(Qt.AlignCenter)
        self.layout.addWidget(self.label)
        self.layout.addWidget(self.change_label)
        self.layout.addWidget(self.name_label)
        for lbl in (self.label, self.change_label, self.name_label):
            self.add_shadow(lbl)

        self.update_content()

    def add_shadow(self, label):
        shadow = QGraphicsDropShadowEffect(self)
        shadow.setBlurRadius(2)
        shadow.setColor(QColor(0, 0, 0, 120))
        shadow.setOffset(1, 1)
        label.setGraphicsEffect(shadow)

    def update_color(self):
        self.current_color = hsl_to_hex(self.tile.get("color"))
        self.setStyleSheet(
            f"QFrame#HeatmapCell {{ background-color: {self.current_color}; "
            f"border: 1px solid rgba(0,0,0,0.25); border-radius: 2px; }} "
            f"QFrame#HeatmapCell:hover {{ border: 1.5px solid white; }}"
        )

    def enterEvent(self, event):
        self.tooltip_timer.start(300)

    def leaveEvent(self, event):
        self.tooltip_timer.stop()
        QToolTip.hideText()

    def tooltip_text(self):
        change = self.tile.get("change", 0)
        color = "#4caf50" if change >= 0 else "#ef5350"
        return (f"<b>{self.tile.get('name', '')}</b> ({self.tile.get('sector', '')})<br>"
                f"Change: <span style='color:{color};'>{change:+.2f}%</span>")

    def show_custom_tooltip(self):
        QToolTip.showText(QCursor.pos(), self.tooltip_text(), self)

    def update_content(self):
        self.update_color()
        self.change_label.setText(format_change(self.tile.get("change", 0)))
        self.resizeEvent(None)

    def resizeEvent(self, event):
        w, h = self.width(), self.height()
        if w <= 8 or h <= 8:
            self.label.hide()
            self.change_label.hide()
            self.name_label.hide()
            return

        # font follows the cell's area
        font_size = max(2, min(math.sqrt(w * h) / 4.7, 36))
        if font_size < 2.8:
            self.label.hide()
            self.change_label.hide()
            self.name_label.hide()
            return

        self.label.show()
        self.label.setStyleSheet(f"color: white; font-weight: 800; font-size: {int(font_size)}px; background: transparent; border: none;")
        # change text only when there is room under the label
        if h > font_size * 2.3 and w > font_size * 2.0:
            self.change_label.show()
            self.change_label.setStyleSheet(f"color: rgba(255,255,255,0.85); font-weight: 500; font-size: {max(2, int(font_size * 0.8))}px; background: transparent; border: none;")
        else:
            self.change_label.hide()

        # full name as a third line on the roomier tiles
        if h > font_size * 3.4 and w > font_size * 5.0:
            self.name_label.show()
            self.name_label.setStyleSheet(f"color: rgba(241,245,249,0.85); font-size: {max(2, int(font_size * 0.6))}px; background: transparent; border: none;")
        else:
            self.name_label.hide()


class HeatmapWidget(QFrame):
    """Tiles laid out in a 0..100 space, scaled to the widget on every resize."""

    def __init__(self, tiles, parent=None):
        super().__init__(parent)
        self.tiles = tiles
        self.cells = []
        self.setStyleSheet("QFrame { background: rgba(15, 23, 42, 0.6); border: none; }")
        self.setup_cells()

    def setup_cells(self):
        for tile in self.tiles:
            cell = HeatmapCell(tile, parent=self)
            self.cells.append(cell)
            cell.show()

    def resizeEvent(self, event):
        w, h = self.width(), self.height()
        if w <= 0 or h <= 0:
            return
        for cell in self.cells:
            cell.setGeometry(*snap_rect(cell.tile, w / 100.0, h / 100.0, w, h))

    def clear_cells(self):
        for cell in self.cells:
            cell.setParent(None)
            cell.deleteLater()
        self.cells = []

    def refresh_tiles(self, tiles):
        self.tiles = tiles
        self.clear_cells()
        self.setup_cells()
        self.resizeEvent(None)


class HeatmapWindow(QWidget):
    position_changed = pyqtSignal(int, int)

    def __init__(self, slide, parent=None):
        super().__init__(parent)
        self.slide = slide
        self.drag_pos = None
        self.setWindowTitle(slide.get("title", "Revenue heatmap"))
        self.setup_ui()

    def setup_ui(self):
        self.setStyleSheet("QWidget { background-color: #020617; }")
        layout = QVBoxLayout(self)
        layout.setContentsMargins(24, 16, 24, 16)
        layout.setSpacing(6)

        self.title_label = QLabel(self.slide.get("title", ""))
        self.title_label.setStyleSheet("color: white; font-size: 20px; font-weight: 600;")
        layout.addWidget(self.title_label)

        self.subtitle_label = QLabel(self.slide.get("subtitle") or "")
        self.subtitle_label.setStyleSheet("color: rgba(241,245,249,0.85); font-size: 11px;")
        self.subtitle_label.setVisible(bool(self.slide.get("subtitle")))
        layout.addWidget(self.subtitle_label)

        self.treemap = HeatmapWidget(self.slide["payload"]["tiles"], parent=self)
        layout.addWidget(self.treemap, 1)

    def update_slide(self, slide):
        self.slide = slide
        self.title_label.setText(slide.get("title", ""))
        self.subtitle_label.setText(slide.get("subtitle") or "")
        self.treemap.refresh_tiles(slide["payload"]["tiles"])

    def mousePressEvent(self, e):
        if e.button() == Qt.LeftButton:
            self.drag_pos = e.globalPos() - self.frameGeometry().topLeft()

    def mouseMoveEvent(self, e):
        if self.drag_pos is not None and e.buttons() & Qt.LeftButton:
            self.move(e.globalPos() - self.drag_pos)

    def mouseReleaseEvent(self, e):
        if self.drag_pos is not None:
            self.drag_pos = None
            self.position_changed.emit(self.pos().x(), self.pos().y())


class HeatmapApp:
    def __init__(self, slide, config, config_file=None):
        self.app = QApplication.instance() or QApplication(sys.argv)
        self.app.setFont(QFont("Segoe UI", 10))
        self.config = config
        self.config_file = config_file

        self.window = HeatmapWindow(slide)
        size = config.get("window_size") or {}
        self.window.resize(size.get("width", 960), size.get("height", 600))
        pos = config.get("window_position")
        if pos:
            self.window.move(QPoint(pos["x"], pos["y"]))
        self.window.position_changed.connect(self.save_position)
        self.window.show()

    def save_position(self, x, y):
        self.config["window_position"] = {"x": x, "y": y}
        save_config(self.config, self.config_file)

    def run(self):
        return self.app.exec_()


def non_negative_int(value):
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"expected a number >= 0, got {value}")
    return number


def build_parser():
    parser = argparse.ArgumentParser(
        prog="revenue-heatmap",
        description="Show where revenue came from as a squarified treemap heatmap.",
    )
    parser.add_argument("csv_path", nargs="?", default=None,
                        help="CSV with product, sales and optional sales_delta_pct columns (demo data if omitted).")
    parser.add_argument("--top", type=non_negative_int, default=None, help="Number of products to show (config top_n by default).")
    parser.add_argument("--currency", default="USD", help="Currency code carried in the slide payload.")
    parser.add_argument("--config", default=None, help="Path to config.json.")
    parser.add_argument("--json-out", default=None, help="Write the heatmap slide as JSON to this path.")
    parser.add_argument("--no-gui", action="store_true", help="Print the tiles instead of opening a window.")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    config = load_config(args.config)
    products = load_products_csv(args.csv_path) if args.csv_path else DEMO_PRODUCTS
    top_n = args.top if args.top is not None else config.get("top_n", 8)

    slide = build_heatmap_slide(products, currency_code=args.currency, limit=top_n,
                                min_dimension=config["min_dimension"])
    if slide is None:
        print("[WARN] No products with revenue, nothing to show")
        return 1

    tiles = slide["payload"]["tiles"]
    print(f"[INFO] Laid out {len(tiles)} tiles")

    if args.json_out:
        with open(args.json_out, "w", encoding="utf-8") as f:
            json.dump(slide, f, indent=2)
        print(f"[INFO] Slide saved to: {args.json_out}")

    if args.no_gui:
        for t in tiles:
            print(f"{t['label']:<14} | {t['x']:6.2f} {t['y']:6.2f} {t['width']:6.2f} {t['height']:6.2f} | "
                  f"{format_change(t['change']):>6} | {t['color']}")
        return 0

    return HeatmapApp(slide, config, args.config).run()


if __name__ == "__main__":
    sys.exit(main())
