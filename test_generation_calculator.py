import unittest

from family_snapshot import FamilySnapshot, visible_person_ids
from generation_calculator import (assign_generations, build_child_graph, find_root_ancestors,
                                   generation_label, generation_stats)


def chain_family():
    """g1 -> g2 -> g3, g2 married to an outsider, plus one unrelated person."""
    return FamilySnapshot.from_records(
        [
            {'person_id': 'g1', 'gender': 'male'},
            {'person_id': 'g2', 'gender': 'male', 'parent_ids': ['g1']},
            {'person_id': 'wife', 'gender': 'female'},
            {'person_id': 'g3', 'parent_ids': ['g2', 'wife']},
            {'person_id': 'loner', 'is_root_ancestor': False},
        ],
        [{'type': 'spouse', 'person1_id': 'g2', 'person2_id': 'wife', 'marriage_order': 1}],
    )


class TestGenerationCalculator(unittest.TestCase):

    def test_chain_generations(self):
        assignment = assign_generations(chain_family())
        self.assertEqual(assignment.get('g1'), 1)
        self.assertEqual(assignment.get('g2'), 2)
        self.assertEqual(assignment.get('g3'), 3)

    def test_married_in_spouse_joins_partner_row(self):
        assignment = assign_generations(chain_family())
        self.assertEqual(assignment.get('wife'), 2)
        self.assertIn('g1', assignment.lineages['g3'])
        self.assertIn('wife', assignment.lineages['g3'])

    def test_explicit_roots_leave_others_disconnected(self):
        assignment = assign_generations(chain_family(), root_ids=['g1'])
        self.assertEqual(assignment.disconnected, ['loner'])
        # reached only through marriage
        self.assertEqual(assignment.get('wife'), 2)
        self.assertEqual(assignment.lineages['wife'], frozenset({'g1'}))

    def test_deepest_lineage_wins(self):
        snapshot = FamilySnapshot.from_records([
            {'person_id': 'old'},
            {'person_id': 'mid', 'parent_ids': ['old']},
            {'person_id': 'young'},
            {'person_id': 'kid', 'parent_ids': ['mid', 'young']},
        ])
        self.assertEqual(assign_generations(snapshot).get('kid'), 3)

    def test_parent_cycle_terminates(self):
        snapshot = FamilySnapshot.from_records([
            {'person_id': 'a', 'parent_ids': ['b'], 'is_root_ancestor': True},
            {'person_id': 'b', 'parent_ids': ['a']},
        ])
        assignment = assign_generations(snapshot)
        self.assertTrue(all(g <= 2 for g in assignment.generations.values()))

    def test_roots_and_child_graph(self):
        snapshot = chain_family()
        self.assertEqual(find_root_ancestors(snapshot), ['g1', 'wife', 'loner'])
        graph = build_child_graph(snapshot)
        self.assertTrue(graph.has_edge('g2', 'g3'))
        self.assertTrue(graph.has_edge('wife', 'g3'))
        self.assertEqual(graph.number_of_edges(), 3)

    def test_labels(self):
        self.assertEqual(generation_label(1), 'Leluhur')
        self.assertEqual(generation_label(3), 'Cucu')
        self.assertEqual(generation_label(8), 'Gantung Siwur')
        self.assertEqual(generation_label(9), 'Generasi ke-9')
        self.assertEqual(generation_label(0), 'Tidak terhubung')

    def test_stats(self):
        stats = generation_stats(assign_generations(chain_family(), root_ids=['g1']))
        self.assertEqual(stats['total_generations'], 3)
        self.assertEqual(stats['persons_by_generation'], {1: 1, 2: 2, 3: 1})
        self.assertEqual(stats['disconnected_count'], 1)

    def test_stats_count_hidden_people_against_total(self):
        snapshot = chain_family()
        assignment = assign_generations(snapshot, ['g1', 'g2'])
        self.assertEqual(generation_stats(assignment)['disconnected_count'], 0)
        stats = generation_stats(assignment, total=len(snapshot))
        self.assertEqual(stats['disconnected_count'], 3)
        self.assertEqual(stats['total_generations'], 2)


class TestVisibility(unittest.TestCase):

    def test_collapse_hides_descendants_but_not_spouse(self):
        snapshot = chain_family()
        self.assertEqual(visible_person_ids(snapshot, ['g2', 'wife']), ['g1', 'g2', 'wife', 'loner'])

    def test_child_stays_visible_through_other_parent(self):
        snapshot = chain_family()
        self.assertIn('g3', visible_person_ids(snapshot, ['g2']))

    def test_nothing_collapsed_shows_everyone(self):
        snapshot = chain_family()
        self.assertEqual(visible_person_ids(snapshot), snapshot.ids())

    def test_parent_cycle_stays_visible(self):
        snapshot = FamilySnapshot.from_records([
            {'person_id': 'root'},
            {'person_id': 'kid', 'parent_ids': ['root']},
            {'person_id': 'a', 'parent_ids': ['b']},
            {'person_id': 'b', 'parent_ids': ['a']},
        ])
        self.assertEqual(visible_person_ids(snapshot), ['root', 'kid', 'a', 'b'])
        self.assertEqual(visible_person_ids(snapshot, ['root']), ['root', 'a', 'b'])
        self.assertEqual(visible_person_ids(snapshot, ['a']), ['root', 'kid', 'a'])


if __name__ == '__main__':
    unittest.main()
