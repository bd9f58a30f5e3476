"""
Layered (Sugiyama-style) placement of spouse clusters.
The graph is built over clusters, never over persons, so couples stay atomic.
Phases: layer assignment, conflict handling, virtual nodes, barycenter
crossing reduction, size-aware coordinate assignment.
"""

from collections import defaultdict
from typing import Dict, FrozenSet, List, Tuple

import networkx as nx

from family_snapshot import FamilySnapshot, birth_key
from layout_config import LayoutConfig, LayoutRules
from spouse_clusters import Cluster

VIRTUAL_PREFIX = '__virtual'
CLONE_PREFIX = '__clone'


def build_cluster_graph(snapshot: FamilySnapshot, person_to_cluster: Dict[str, str],
                        clusters: Dict[str, Cluster], rules: LayoutRules) -> nx.DiGraph:
    """
    parent cluster -> child cluster edges, deduplicated, self-loops dropped.
    Children of each parent cluster are visited in birth order, so successor
    order in the graph already reflects age.
    """
    graph = nx.DiGraph()
    for cluster_id, cluster in clusters.items():
        child_ids = []
        for member in cluster.members:
            for cid in snapshot.children(member):
                if cid in person_to_cluster and cid not in child_ids:
                    child_ids.append(cid)
        child_ids.sort(key=lambda c: birth_key(snapshot.get(c), rules.sort_by_birth_date))

        for cid in child_ids:
            target = person_to_cluster[cid]
            if target == cluster_id or graph.has_edge(cluster_id, target):
                continue
            graph.add_edge(cluster_id, target)

    for node in graph.nodes():
        graph.nodes[node]['width'] = clusters[node].width
        graph.nodes[node]['size'] = len(clusters[node].members)
    return graph


class LayeredPlacer:
    def __init__(self, config: LayoutConfig, rules: LayoutRules):
        self.config = config
        self.rules = rules
        self.lineages: Dict[str, FrozenSet[str]] = {}

    def place(self, graph: nx.DiGraph, cluster_generations: Dict[str, int],
              cluster_lineages: Dict[str, FrozenSet[str]]) -> Dict[str, Tuple[float, float]]:
        """Returns cluster id -> (center x, top y)."""
        if graph.number_of_nodes() == 0:
            return {}

        self.lineages = cluster_lineages
        if not self.rules.cross_lineage_grouping:
            return self._place_component(graph, cluster_generations)

        components = [graph.subgraph(c).copy() for c in nx.weakly_connected_components(graph)]
        if self.rules.largest_group_first:
            components.sort(key=lambda g: (-self._person_count(g), min(g.nodes())))
        else:
            components.sort(key=lambda g: min(g.nodes()))

        positions = {}
        cursor = 0.0
        group_gap = self.config.node_sep * self.config.group_gap_multiplier
        for component in components:
            placed = self._place_component(component, cluster_generations)
            left = min(x - component.nodes[n]['width'] / 2 for n, (x, _) in placed.items())
            right = max(x + component.nodes[n]['width'] / 2 for n, (x, _) in placed.items())
            shift = cursor - left
            for node, (x, y) in placed.items():
                positions[node] = (x + shift, y)
            cursor += right - left + group_gap
        return positions

    @staticmethod
    def _person_count(graph: nx.DiGraph) -> int:
        return sum(graph.nodes[n]['size'] for n in graph.nodes())

    # ==================== PHASES ====================

    def _place_component(self, graph: nx.DiGraph, cluster_generations: Dict[str, int]) -> Dict[str, Tuple[float, float]]:
        layers = self._assign_layers(graph, cluster_generations)
        aug = self._augment(graph, layers)
        order = self._initial_order(aug)
        self._reduce_crossings(aug, order)
        centers = self._assign_coordinates(aug, order)

        row_height = self.config.row_height
        return {n: (centers[n], aug.nodes[n]['layer'] * row_height)
                for n in graph.nodes()}

    def _assign_layers(self, graph: nx.DiGraph, cluster_generations: Dict[str, int]) -> Dict[str, int]:
        if self.rules.generation_alignment == 'strict':
            return {n: cluster_generations[n] - 1 for n in graph.nodes()}

        dag = self._acyclic_copy(graph)
        layers = {}
        for node in nx.topological_sort(dag):
            preds = list(dag.predecessors(node))
            layers[node] = max(layers[p] for p in preds) + 1 if preds else 0
        return layers

    @staticmethod
    def _acyclic_copy(graph: nx.DiGraph) -> nx.DiGraph:
        dag = graph.copy()
        while not nx.is_directed_acyclic_graph(dag):
            cycle = nx.find_cycle(dag, orientation='original')
            u, v = cycle[-1][0], cycle[-1][1]
            dag.remove_edge(u, v)
        return dag

    def _augment(self, graph: nx.DiGraph, layers: Dict[str, int]) -> nx.DiGraph:
        """Real nodes plus virtual chains for long edges; conflicting edges per cycle-breaking mode."""
        aug = nx.DiGraph(ties=defaultdict(list))
        for node in graph.nodes():
            aug.add_node(node, layer=layers[node], width=graph.nodes[node]['width'], kind='real')

        counter = 0
        for src, tgt in graph.edges():
            if layers[tgt] > layers[src]:
                counter = self._add_chain(aug, src, tgt, counter)
                continue

            mode = self.rules.cycle_breaking
            if mode == 'crosslink' and layers[tgt] < layers[src]:
                counter = self._add_chain(aug, tgt, src, counter)
            elif mode == 'clone':
                clone_id = f"{CLONE_PREFIX}_{tgt}_{src}"
                aug.add_node(clone_id, layer=layers[src] + 1, width=0.0, kind='clone')
                aug.add_edge(src, clone_id)
                aug.graph['ties'][tgt].append(clone_id)
        return aug

    @staticmethod
    def _add_chain(aug: nx.DiGraph, src: str, tgt: str, counter: int) -> int:
        prev = src
        for layer in range(aug.nodes[src]['layer'] + 1, aug.nodes[tgt]['layer']):
            virtual_id = f"{VIRTUAL_PREFIX}_{counter}"
            counter += 1
            aug.add_node(virtual_id, layer=layer, width=0.0, kind='virtual')
            aug.add_edge(prev, virtual_id)
            prev = virtual_id
        aug.add_edge(prev, tgt)
        return counter

    @staticmethod
    def _initial_order(aug: nx.DiGraph) -> Dict[int, List[str]]:
        """Depth-first from sources; successors in insertion (birth) order."""
        order = defaultdict(list)
        seen = set()
        sources = sorted(n for n in aug.nodes() if aug.in_degree(n) == 0)
        for source in sources + sorted(aug.nodes()):
            if source in seen:
                continue
            for node in nx.dfs_preorder_nodes(aug, source):
                if node in seen:
                    continue
                seen.add(node)
                order[aug.nodes[node]['layer']].append(node)
        return order

    def _reduce_crossings(self, aug: nx.DiGraph, order: Dict[int, List[str]]):
        layer_keys = sorted(order)
        for _ in range(self.config.crossing_sweeps):
            for i in range(1, len(layer_keys)):
                self._barycenter_sort(aug, order, layer_keys[i], layer_keys[i - 1], upward=False)
            for i in range(len(layer_keys) - 2, -1, -1):
                self._barycenter_sort(aug, order, layer_keys[i], layer_keys[i + 1], upward=True)

    @staticmethod
    def _barycenter_sort(aug: nx.DiGraph, order: Dict[int, List[str]], free: int, fixed: int, upward: bool):
        fixed_index = {n: i for i, n in enumerate(order[fixed])}
        ties = aug.graph.get('ties', {})
        tie_index = {}
        if ties:
            tie_index = {n: i for layer in order.values() for i, n in enumerate(layer)}
        current = order[free]
        keys = {}
        for i, node in enumerate(current):
            neighbours = aug.successors(node) if upward else aug.predecessors(node)
            positions = [fixed_index[n] for n in neighbours if n in fixed_index]
            # a conflict target follows its placeholder below the source
            positions += [tie_index[t] for t in ties.get(node, ()) if t in tie_index]
            keys[node] = (sum(positions) / len(positions) if positions else i, i)
        order[free] = sorted(current, key=lambda n: keys[n])

    def _separation(self, aug: nx.DiGraph, left: str, right: str) -> float:
        if aug.nodes[left]['kind'] != 'real' or aug.nodes[right]['kind'] != 'real':
            return self.config.node_sep / 2
        sep = self.config.node_sep
        a, b = self.lineages.get(left), self.lineages.get(right)
        if a and b and not (a & b):
            sep *= self.config.tree_gap_multiplier
        return sep

    def _assign_coordinates(self, aug: nx.DiGraph, order: Dict[int, List[str]]) -> Dict[str, float]:
        centers: Dict[str, float] = {}
        for layer in sorted(order):
            cursor = 0.0
            row = order[layer]
            for i, node in enumerate(row):
                width = aug.nodes[node]['width']
                if i:
                    cursor += self._separation(aug, row[i - 1], node)
                centers[node] = cursor + width / 2
                cursor += width

        layer_keys = sorted(order)
        for _ in range(self.config.crossing_sweeps):
            for layer in layer_keys[1:]:
                self._align_row(aug, order[layer], centers, upward=False)
            for layer in reversed(layer_keys[:-1]):
                self._align_row(aug, order[layer], centers, upward=True)
        return centers

    def _align_row(self, aug: nx.DiGraph, row: List[str], centers: Dict[str, float], upward: bool):
        """
        Moves nodes toward the mean center of their neighbours in the adjacent row.
        Order and separation are kept: the result averages a left-packed and a
        right-packed feasible placement.
        """
        if not row:
            return
        ties = aug.graph.get('ties', {})
        desired = []
        for node in row:
            neighbours = list(aug.successors(node) if upward else aug.predecessors(node))
            neighbours += ties.get(node, ())
            if neighbours:
                desired.append(sum(centers[n] for n in neighbours) / len(neighbours))
            else:
                desired.append(centers[node])

        half = [aug.nodes[n]['width'] / 2 for n in row]
        gaps = [self._separation(aug, row[i], row[i + 1]) for i in range(len(row) - 1)]

        pushed_right = list(desired)
        for i in range(1, len(row)):
            pushed_right[i] = max(pushed_right[i], pushed_right[i - 1] + half[i - 1] + gaps[i - 1] + half[i])
        pushed_left = list(desired)
        for i in range(len(row) - 2, -1, -1):
            pushed_left[i] = min(pushed_left[i], pushed_left[i + 1] - half[i + 1] - gaps[i] - half[i])

        for i, node in enumerate(row):
            centers[node] = (pushed_right[i] + pushed_left[i]) / 2
