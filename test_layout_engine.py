import unittest
from collections import defaultdict

from family_snapshot import FamilySnapshot, Position
from layout_config import LayoutConfig, LayoutRules
from layout_engine import LayoutEngine, LayoutResult, calculate_tree_layout

EPS = 1e-6


def person(pid, gender='unknown', parents=(), **extra):
    record = {'person_id': pid, 'gender': gender, 'parent_ids': list(parents)}
    record.update(extra)
    return record


def marriage(a, b, order=None):
    return {'type': 'spouse', 'person1_id': a, 'person2_id': b, 'marriage_order': order}


def branching_family(depth=4, kids=3):
    """Root couple; every child marries someone from outside; `kids` children per couple."""
    persons = [person('r', 'male'), person('rw', 'female')]
    relationships = [marriage('r', 'rw', 1)]
    couples = [('r', 'rw')]
    counter = 0
    for level in range(depth):
        next_couples = []
        for husband, wife in couples:
            for k in range(kids):
                counter += 1
                child = f"p{counter:04d}"
                persons.append(person(child, 'male', parents=(husband, wife)))
                if level < depth - 1:
                    spouse = f"s{counter:04d}"
                    persons.append(person(spouse, 'female'))
                    relationships.append(marriage(child, spouse, 1))
                    next_couples.append((child, spouse))
        couples = next_couples
    return persons, relationships


def assert_no_row_overlap(test, positions, width):
    rows = defaultdict(list)
    for pos in positions.values():
        rows[round(pos.y, 3)].append(pos.x)
    for xs in rows.values():
        xs.sort()
        for a, b in zip(xs, xs[1:]):
            test.assertGreaterEqual(b - a, width - EPS)


def assert_cluster_gaps(test, result, config):
    """Clusters sharing a row keep at least min_gap between their boxes."""
    rows = defaultdict(list)
    for cluster in result.clusters.values():
        boxes = [result.positions[m] for m in cluster.members if m in result.positions]
        if len(boxes) != len(cluster.members):
            continue
        left = min(p.x for p in boxes)
        rows[round(boxes[0].y, 3)].append((left, max(p.x for p in boxes) + config.node_width))
    for spans in rows.values():
        spans.sort()
        for (_, right), (left, _) in zip(spans, spans[1:]):
            test.assertGreaterEqual(left - right, config.min_gap - EPS)


class TestLayoutEngineScenarios(unittest.TestCase):

    def setUp(self):
        self.engine = LayoutEngine()
        self.config = self.engine.config

    def test_1_single_root_two_children(self):
        snapshot = FamilySnapshot.from_records([
            person('root', 'male'),
            person('c1', parents=('root',)),
            person('c2', parents=('root',)),
        ])
        result = self.engine.calculate_layout(snapshot)
        pos = result.positions

        self.assertEqual(result.generations['c1'], 2)
        self.assertEqual(result.generations['c2'], 2)
        self.assertAlmostEqual(pos['c1'].y, pos['c2'].y)
        self.assertAlmostEqual(pos['c1'].y - pos['root'].y, self.config.row_height)
        self.assertAlmostEqual(pos['root'].x, (pos['c1'].x + pos['c2'].x) / 2)
        self.assertGreaterEqual(pos['c2'].x - pos['c1'].x, self.config.node_width + self.config.min_gap - EPS)

    def test_2_one_husband_two_wives(self):
        snapshot = FamilySnapshot.from_records(
            [person('h', 'male'), person('w2', 'female'), person('w1', 'female')],
            [marriage('h', 'w2', 2), marriage('h', 'w1', 1)],
        )
        pos = self.engine.calculate_layout(snapshot).positions

        self.assertLess(pos['w1'].x, pos['h'].x)
        self.assertLess(pos['h'].x, pos['w2'].x)
        self.assertAlmostEqual(pos['h'].x - pos['w1'].x, self.config.node_width + self.config.spouse_gap)
        self.assertAlmostEqual(pos['w1'].y, pos['w2'].y)

    def test_3_intermarried_lineages_take_deeper_generation(self):
        snapshot = FamilySnapshot.from_records(
            [
                person('a1', 'male'),
                person('a2', 'male', parents=('a1',)),
                person('a3', 'male', parents=('a2',)),
                person('b1', 'male'),
                person('b2', 'female', parents=('b1',)),
                person('x', parents=('a3', 'b2')),
            ],
            [marriage('a3', 'b2', 1)],
        )
        result = self.engine.calculate_layout(snapshot)

        self.assertEqual(result.generations['b2'], 3)
        self.assertEqual(result.generations['x'], 4)
        self.assertAlmostEqual(result.positions['a3'].y, result.positions['b2'].y)
        self.assertGreater(result.positions['x'].y, result.positions['b2'].y)

    def test_4_isolated_person_goes_to_orphan_grid(self):
        snapshot = FamilySnapshot.from_records([
            person('root', 'male'),
            person('c1', parents=('root',)),
            person('c2', parents=('root',)),
            person('alone'),
        ])
        result = self.engine.calculate_layout(snapshot)

        self.assertIn('alone', result.orphans)
        self.assertNotIn('alone', result.generations)
        main_bottom = max(result.positions[p].y for p in ('root', 'c1', 'c2'))
        self.assertGreaterEqual(result.positions['alone'].y,
                                main_bottom + self.config.node_height + self.config.orphan_gap - EPS)

    def test_5_hidden_orphans(self):
        snapshot = FamilySnapshot.from_records([
            person('root'), person('c1', parents=('root',)), person('alone'),
        ])
        engine = LayoutEngine(rules={'show_orphans': False})
        result = engine.calculate_layout(snapshot)

        self.assertNotIn('alone', result.positions)
        self.assertEqual(result.hidden_orphans, ['alone'])


class TestLayoutEngineInvariants(unittest.TestCase):

    def setUp(self):
        self.persons, self.relationships = branching_family()
        self.snapshot = FamilySnapshot.from_records(self.persons, self.relationships)
        self.engine = LayoutEngine()

    def test_large_tree_is_collision_free(self):
        result = self.engine.calculate_layout(self.snapshot)

        self.assertEqual(len(result.positions), len(self.persons))
        self.assertTrue(result.converged)
        self.assertLessEqual(result.collision_passes, self.engine.config.collision_max_passes)
        assert_no_row_overlap(self, result.positions, self.engine.config.node_width)
        assert_cluster_gaps(self, result, self.engine.config)

    def test_generation_rows_are_aligned(self):
        result = self.engine.calculate_layout(self.snapshot)
        row_of = {}
        for pid, gen in result.generations.items():
            row_of.setdefault(gen, result.positions[pid].y)
            self.assertAlmostEqual(result.positions[pid].y, row_of[gen])
        ys = [row_of[g] for g in sorted(row_of)]
        self.assertEqual(ys, sorted(ys))
        self.assertEqual(len(set(ys)), len(ys))

    def test_children_below_parents(self):
        result = self.engine.calculate_layout(self.snapshot)
        for pid in result.positions:
            for parent in self.snapshot.parents(pid):
                self.assertGreater(result.positions[pid].y, result.positions[parent].y)

    def test_spouses_are_adjacent(self):
        result = self.engine.calculate_layout(self.snapshot)
        step = self.engine.config.node_width + self.engine.config.spouse_gap
        for rel in self.relationships:
            a, b = result.positions[rel['person1_id']], result.positions[rel['person2_id']]
            self.assertAlmostEqual(a.y, b.y)
            self.assertAlmostEqual(abs(a.x - b.x), step)

    def test_deterministic_and_input_order_independent(self):
        first = self.engine.calculate_layout(self.snapshot).as_dict()
        second = self.engine.calculate_layout(self.snapshot).as_dict()
        reversed_snapshot = FamilySnapshot.from_records(list(reversed(self.persons)), self.relationships)
        third = self.engine.calculate_layout(reversed_snapshot).as_dict()

        self.assertEqual(first, second)
        self.assertEqual(first, third)

    def test_positions_are_normalized_to_margin(self):
        result = self.engine.calculate_layout(self.snapshot)
        margin = self.engine.config.margin
        self.assertAlmostEqual(min(p.x for p in result.positions.values()), margin)
        self.assertAlmostEqual(min(p.y for p in result.positions.values()), margin)

    def test_siblings_follow_birth_dates(self):
        snapshot = FamilySnapshot.from_records([
            person('dad', 'male'),
            person('a', parents=('dad',), birth_date='1990-05-01'),
            person('b', parents=('dad',), birth_date='1985-01-01'),
            person('c', parents=('dad',), birth_date='1995-03-01'),
        ])
        pos = self.engine.calculate_layout(snapshot).positions
        self.assertLess(pos['b'].x, pos['a'].x)
        self.assertLess(pos['a'].x, pos['c'].x)

    def test_birth_order_breaks_missing_dates(self):
        snapshot = FamilySnapshot.from_records([
            person('dad', 'male'),
            person('a', parents=('dad',), birth_order=3),
            person('b', parents=('dad',), birth_order=1),
            person('c', parents=('dad',), birth_order=2),
        ])
        pos = self.engine.calculate_layout(snapshot).positions
        self.assertLess(pos['b'].x, pos['c'].x)
        self.assertLess(pos['c'].x, pos['a'].x)

    def test_siblings_married_across_families_keep_birth_order(self):
        snapshot = FamilySnapshot.from_records(
            [
                person('p', 'male'), person('pw', 'female'),
                person('q', 'male'), person('qw', 'female'),
                person('p1', 'male', parents=('p', 'pw'), birth_date='1900-01-01'),
                person('p2', 'male', parents=('p', 'pw'), birth_date='1910-01-01'),
                person('q1', 'female', parents=('q', 'qw'), birth_date='1920-01-01'),
                person('q2', 'female', parents=('q', 'qw'), birth_date='1930-01-01'),
            ],
            [marriage('p', 'pw', 1), marriage('q', 'qw', 1), marriage('p1', 'q2', 1)],
        )
        result = self.engine.calculate_layout(snapshot)
        pos = result.positions

        self.assertLess(pos['p1'].x, pos['p2'].x)
        self.assertLess(pos['q1'].x, pos['q2'].x)
        assert_cluster_gaps(self, result, self.engine.config)


class TestLayoutEngineOptions(unittest.TestCase):

    def setUp(self):
        self.snapshot = FamilySnapshot.from_records([
            person('root', 'male'),
            person('c1', parents=('root',)),
            person('c2', parents=('root',)),
        ])

    def test_empty_input(self):
        result = LayoutEngine().calculate_layout(FamilySnapshot())
        self.assertIsInstance(result, LayoutResult)
        self.assertEqual(result.positions, {})
        self.assertEqual(calculate_tree_layout([]), {})

    def test_fixed_positions_survive_relayout(self):
        previous = {'c1': Position(999.0, 888.0, fixed=True), 'c2': Position(5.0, 5.0)}
        result = LayoutEngine().calculate_layout(self.snapshot, previous_positions=previous)

        self.assertEqual((result.positions['c1'].x, result.positions['c1'].y), (999.0, 888.0))
        self.assertTrue(result.positions['c1'].fixed)
        self.assertFalse(result.positions['c2'].fixed)

    def test_auto_arrange_overrides_fixed(self):
        previous = {'c1': Position(999.0, 888.0, fixed=True)}
        result = LayoutEngine().calculate_layout(self.snapshot, previous_positions=previous, auto_arrange=True)

        self.assertNotEqual((result.positions['c1'].x, result.positions['c1'].y), (999.0, 888.0))
        self.assertFalse(result.positions['c1'].fixed)

    def test_collapsed_person_hides_descendants(self):
        result = LayoutEngine().calculate_layout(self.snapshot, collapsed_ids=['root'])
        self.assertEqual(set(result.positions), {'root'})

    def test_partial_overrides(self):
        engine = LayoutEngine(config={'rank_sep': 300}, rules={'center_parent': False})
        self.assertEqual(engine.config.rank_sep, 300)
        self.assertEqual(engine.config.node_width, LayoutConfig().node_width)
        self.assertFalse(engine.rules.center_parent)

        pos = engine.calculate_layout(self.snapshot).positions
        self.assertAlmostEqual(pos['c1'].y - pos['root'].y, engine.config.node_height + 300)

    def test_plain_dict_entry_point(self):
        out = calculate_tree_layout([
            {'person_id': 'root'},
            {'person_id': 'kid', 'parent_ids': ['root']},
        ])
        self.assertEqual(set(out), {'root', 'kid'})
        self.assertEqual(set(out['kid']), {'x', 'y'})

    def test_self_parent_link_is_ignored(self):
        snapshot = FamilySnapshot.from_records([
            person('root', child_ids=['root', 'kid']),
            person('kid'),
        ])
        result = LayoutEngine().calculate_layout(snapshot)
        self.assertEqual(result.generations, {'root': 1, 'kid': 2})

    def test_cycle_modes_place_everyone(self):
        snapshot = FamilySnapshot.from_records([
            person('a', is_root_ancestor=True, parent_ids=['b']),
            person('b', parent_ids=['a']),
            person('c', parent_ids=['b']),
        ])
        for mode in ('off', 'clone', 'crosslink'):
            for alignment in ('strict', 'loose'):
                rules = LayoutRules(cycle_breaking=mode, generation_alignment=alignment)
                result = LayoutEngine(rules=rules).calculate_layout(snapshot)
                self.assertEqual(set(result.positions), {'a', 'b', 'c'}, (mode, alignment))
                self.assertFalse(any(pid.startswith('__') for pid in result.positions))

    def test_parent_cycle_people_are_reported_and_placed(self):
        snapshot = FamilySnapshot.from_records([
            person('root', 'male'),
            person('kid', parents=('root',)),
            person('a', parents=('b',)),
            person('b', parents=('a',)),
        ])
        result = LayoutEngine().calculate_layout(snapshot)

        self.assertEqual(set(result.positions), {'root', 'kid', 'a', 'b'})
        self.assertEqual(result.disconnected, ['a', 'b'])
        self.assertEqual(sorted(result.orphans), ['a', 'b'])

    def test_collapse_keeps_unreachable_people(self):
        snapshot = FamilySnapshot.from_records([
            person('root', 'male'),
            person('kid', parents=('root',)),
            person('a', parents=('b',)),
            person('b', parents=('a',)),
        ])
        result = LayoutEngine().calculate_layout(snapshot, collapsed_ids=['root'])
        self.assertEqual(set(result.positions), {'root', 'a', 'b'})

    def test_rules_switched_off(self):
        persons, relationships = branching_family(depth=3, kids=2)
        snapshot = FamilySnapshot.from_records(persons, relationships)
        rules = LayoutRules(spouse_ordering=False, sort_by_birth_date=False, center_parent=False,
                            largest_group_first=False, cross_lineage_grouping=False,
                            compact_apportioning=False, title_grouping=False)
        result = LayoutEngine(rules=rules).calculate_layout(snapshot)
        self.assertEqual(len(result.positions), len(persons))
        assert_no_row_overlap(self, result.positions, LayoutConfig().node_width)
        assert_cluster_gaps(self, result, LayoutConfig())


if __name__ == '__main__':
    unittest.main()
