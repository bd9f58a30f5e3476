"""
SVG renderer for the family tree.
Turns a snapshot plus the layout engine's position map (top-left corners) into an
SVG string; every node is wrapped in <a id=...> so the click detector can report it.
"""

from collections import defaultdict
from html import escape
from typing import Dict, Optional

from family_snapshot import GENDER_FEMALE, GENDER_MALE, FamilySnapshot, Position
from layout_config import LayoutConfig

# SVG styles
STYLE = """
<style>
    .node-rect { cursor: pointer; transition: all 0.2s; }
    .node-rect:hover { stroke-width: 3; filter: drop-shadow(0px 0px 5px rgba(255, 215, 0, 0.5)); }
    .node-text { pointer-events: none; font-family: sans-serif; font-size: 14px; }
    .sub-text { font-size: 11px; fill: #555; }
</style>
"""

# (fill, border) per gender
GENDER_COLORS = {
    GENDER_MALE: ("#D6EAF8", "#2E86C1"),
    GENDER_FEMALE: ("#FADBD8", "#C0392B"),
}
DEFAULT_COLORS = ("#EAECEE", "#7F8C8D")
SELECTED_COLORS = ("#FFF3B0", "#FFD700")
EDGE_COLOR = "#5D6D7E"
SPOUSE_COLOR = "#C0392B"
PADDING = 40


class SVGRenderer:
    def __init__(self, snapshot: FamilySnapshot, positions: Dict[str, Position],
                 config: Optional[LayoutConfig] = None, selected_id: Optional[str] = None):
        self.snapshot = snapshot
        self.positions = {pid: pos for pid, pos in positions.items() if pid in snapshot}
        self.config = config or LayoutConfig()
        self.selected_id = selected_id

        # viewBox bounds
        xs = [pos.x for pos in self.positions.values()]
        ys = [pos.y for pos in self.positions.values()]
        if xs and ys:
            self.min_x = min(xs) - PADDING
            self.min_y = min(ys) - PADDING
            self.width = max(xs) + self.config.node_width + PADDING - self.min_x
            self.height = max(ys) + self.config.node_height + PADDING - self.min_y
        else:
            self.min_x, self.min_y, self.width, self.height = 0, 0, 800, 600

    def generate_svg(self, zoom_level: float = 1.0) -> str:
        elements = []
        elements.extend(self._draw_spouse_lines())
        elements.extend(self._draw_edges())
        elements.extend(self._draw_nodes())

        # viewBox stays in layout units, width/height are screen pixels
        final_width = int(self.width * zoom_level)
        final_height = int(self.height * zoom_level)

        return f"""
        <svg viewBox="{self.min_x} {self.min_y} {self.width} {self.height}"
             width="{final_width}px"
             height="{final_height}px"
             preserveAspectRatio="xMidYMid meet"
             xmlns="http://www.w3.org/2000/svg">
            {STYLE}
            {''.join(elements)}
        </svg>
        """

    def _colors(self, person_id: str):
        if person_id == self.selected_id:
            return SELECTED_COLORS
        return GENDER_COLORS.get(self.snapshot.get(person_id).gender, DEFAULT_COLORS)

    def _draw_nodes(self) -> list:
        nodes_svg = []
        w, h = self.config.node_width, self.config.node_height

        for node_id, pos in self.positions.items():
            person = self.snapshot.get(node_id)
            label = person.name or node_id
            display_label = label[:22] + "..." if len(label) > 25 else label
            fill_hex, border_hex = self._colors(node_id)
            stroke_w = 3 if node_id == self.selected_id else 1.5
            cx, cy = pos.x + w / 2, pos.y + h / 2

            lines = [f'<text x="{cx}" y="{cy - 8}" text-anchor="middle" dominant-baseline="middle" '
                     f'class="node-text">{escape(display_label)}</text>']
            if person.title:
                lines.append(f'<text x="{cx}" y="{cy + 12}" text-anchor="middle" class="node-text sub-text">'
                             f'{escape(person.title)}</text>')
            if person.birth_date:
                lines.append(f'<text x="{cx}" y="{cy + 28}" text-anchor="middle" class="node-text sub-text">'
                             f'{escape(person.birth_date)}</text>')

            # The id on <a> is what the click detector returns
            nodes_svg.append(f"""
            <a href='#' id='{escape(node_id, quote=True)}'>
                <g>
                    <rect x="{pos.x}" y="{pos.y}" width="{w}" height="{h}"
                          rx="8" ry="8" fill="{fill_hex}" stroke="{border_hex}" stroke-width="{stroke_w}" class="node-rect" />
                    {''.join(lines)}
                </g>
            </a>
            """)
        return nodes_svg

    def _draw_spouse_lines(self) -> list:
        lines = []
        h = self.config.node_height
        w = self.config.node_width
        for person_id in self.positions:
            for spouse_id in self.snapshot.spouses(person_id):
                if spouse_id not in self.positions or spouse_id < person_id:
                    continue
                a, b = self.positions[person_id], self.positions[spouse_id]
                left, right = (a, b) if a.x <= b.x else (b, a)
                lines.append(self._line(left.x + w, left.y + h / 2, right.x, right.y + h / 2, SPOUSE_COLOR, dashed=True))
        return lines

    def _draw_edges(self) -> list:
        """Orthogonal buses: parents' midpoint down, across above the children, down into each child."""
        edges_svg = []
        w, h = self.config.node_width, self.config.node_height

        family_children = defaultdict(list)
        for child_id in self.positions:
            parents = [p for p in self.snapshot.parents(child_id) if p in self.positions]
            if parents:
                family_children[tuple(sorted(parents))].append(child_id)

        for parents, children in family_children.items():
            parent_xs = [self.positions[p].x + w / 2 for p in parents]
            parent_center_x = sum(parent_xs) / len(parent_xs)
            parent_bottom_y = max(self.positions[p].y for p in parents) + h

            children_top_y = min(self.positions[c].y for c in children)
            branch_y = parent_bottom_y + (children_top_y - parent_bottom_y) * 0.5

            edges_svg.append(self._line(parent_center_x, parent_bottom_y, parent_center_x, branch_y, EDGE_COLOR))

            children_x = [self.positions[c].x + w / 2 for c in children]
            line_start_x = min(min(children_x), parent_center_x)
            line_end_x = max(max(children_x), parent_center_x)
            if abs(line_end_x - line_start_x) > 1:
                edges_svg.append(self._line(line_start_x, branch_y, line_end_x, branch_y, EDGE_COLOR))

            for child_id, cx in zip(children, children_x):
                edges_svg.append(self._line(cx, branch_y, cx, self.positions[child_id].y, EDGE_COLOR))

        return edges_svg

    def _line(self, x1, y1, x2, y2, color, dashed=False):
        dash = ' stroke-dasharray="6,4"' if dashed else ''
        return f'<line x1="{x1}" y1="{y1}" x2="{x2}" y2="{y2}" stroke="{color}" stroke-width="2"{dash} />'
