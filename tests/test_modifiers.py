# tests/test_modifiers.py

import unittest

import numpy as np
import pandas as pd

from penetrance.modifiers import GermlineTestModifier, MarkerTable, MarkerTestModifier, TwinCollapse


def twin_rows():
    # Founders 1, 2; identical twins 3 and 4 (4 is the proband); 6 is a child of twin 3 and founder 5.
    return pd.DataFrame({
        "family": [1] * 6,
        "indiv": [1, 2, 3, 4, 5, 6],
        "mother": [np.nan, np.nan, 2, 2, np.nan, 5],
        "father": [np.nan, np.nan, 1, 1, np.nan, 3],
        "sex": [1, 2, 1, 1, 2, 2],
        "aff": [0, 0, 1, 0, 0, 0],
        "age": [70, 70, 50, 52, 60, 30],
        "cur_age": [70, 70, 55, 52, 60, 30],
        "geno": [""] * 6,
        "isProband": [0, 0, 0, 1, 0, 0],
        "twins": [0, 0, "A", "A", 0, 0],
    })


class TestTwinCollapse(unittest.TestCase):

    def test_rows_are_merged_and_offspring_rewired(self):
        plan = TwinCollapse(twin_rows())
        self.assertEqual(len(plan.rows), 5)
        self.assertListEqual(plan.rows["indiv"].tolist(), [1, 2, 4, 5, 6])
        child = plan.rows[plan.rows["indiv"] == 6].iloc[0]
        self.assertEqual(child["father"], 4)
        self.assertEqual(plan.rows[plan.rows["indiv"] == 4]["isProband"].iloc[0], 1)

    def test_likelihood_rows_multiplied(self):
        plan = TwinCollapse(twin_rows())
        lik = np.arange(1, 13, dtype=float).reshape(6, 2)
        collapsed = plan.apply(lik)
        self.assertEqual(collapsed.shape, (5, 2))
        np.testing.assert_allclose(collapsed[2], lik[2] * lik[3])
        np.testing.assert_allclose(collapsed[[0, 1, 3, 4]], lik[[0, 1, 4, 5]])

    def test_first_listed_member_kept_without_proband(self):
        rows = twin_rows()
        rows["isProband"] = 0
        plan = TwinCollapse(rows)
        self.assertIn(3, plan.rows["indiv"].tolist())
        self.assertNotIn(4, plan.rows["indiv"].tolist())

    def test_mapping_table(self):
        mapping = TwinCollapse(twin_rows()).mapping
        self.assertEqual(len(mapping), 2)
        kept = mapping[mapping["kept"]].iloc[0]
        self.assertEqual(kept["indiv"], 4)
        self.assertTrue(kept["was_proband"])

    def test_triplets_shrink_by_two(self):
        rows = twin_rows()
        rows.loc[6] = [1, 7, 2, 1, 1, 0, 52, 52, "", 0, "A"]
        plan = TwinCollapse(rows)
        self.assertEqual(len(plan.rows), len(rows) - 2)
        self.assertEqual(len(plan.groups[0]), 3)

    def test_no_twins_is_identity(self):
        rows = twin_rows()
        rows["twins"] = 0
        plan = TwinCollapse(rows)
        lik = np.ones((6, 2))
        self.assertIs(plan.apply(lik), lik)
        self.assertTrue(plan.mapping.empty)


class TestGermlineTestModifier(unittest.TestCase):

    def test_factors(self):
        rows = pd.DataFrame({"MLH1": [1, 0, np.nan]})
        modifier = GermlineTestModifier({"MLH1": (0.9, 0.95)})
        factors = modifier.factors(rows, ["MLH1"], 3)
        np.testing.assert_allclose(factors[0], [0.05, 0.9, 0.9])
        np.testing.assert_allclose(factors[1], [0.95, 0.1, 0.1])
        np.testing.assert_allclose(factors[2], [1, 1, 1])

    def test_genes_outside_model_ignored(self):
        rows = pd.DataFrame({"MLH1": [1], "MSH2": [1]})
        modifier = GermlineTestModifier({"MLH1": (0.9, 0.95), "MSH2": (0.5, 0.5)})
        factors = modifier.factors(rows, ["MLH1"], 2)
        np.testing.assert_allclose(factors[0], [0.05, 0.9])

    def test_from_frame_and_validation(self):
        modifier = GermlineTestModifier.from_frame(
            pd.DataFrame({"gene": ["MLH1"], "sensitivity": [0.8], "specificity": [0.99]}))
        self.assertEqual(modifier.characteristics["MLH1"], (0.8, 0.99))
        with self.assertRaises(ValueError):
            GermlineTestModifier({"MLH1": (1.5, 0.9)})
        with self.assertRaises(TypeError):
            GermlineTestModifier({})


class TestMarkerTestModifier(unittest.TestCase):

    def setUp(self):
        table = pd.DataFrame({
            "MSI": [0, 0, 1, 1],
            "BRAF": [0, 1, 0, 1],
            "noncarrier": [0.6, 0.2, 0.15, 0.05],
            "carrier": [0.1, 0.05, 0.8, 0.05],
        })
        self.modifier = MarkerTestModifier({"COL": MarkerTable(["MSI", "BRAF"], table)})

    def test_full_and_partial_patterns(self):
        rows = pd.DataFrame({"aff": [1, 1, 0, 1], "MSI": [1, 1, 1, np.nan], "BRAF": [0, np.nan, 0, np.nan]})
        factors = self.modifier.factors(rows, "COL", 2)
        np.testing.assert_allclose(factors[0], [0.15, 0.8])
        np.testing.assert_allclose(factors[1], [0.2, 0.85])   # summed over BRAF
        np.testing.assert_allclose(factors[2], [1, 1])         # unaffected
        np.testing.assert_allclose(factors[3], [1, 1])         # nothing observed

    def test_neutral_without_mapping(self):
        rows = pd.DataFrame({"aff": [1], "MSI": [1]})
        np.testing.assert_allclose(self.modifier.factors(rows, "BC", 3), [[1, 1, 1]])

    def test_table_validation(self):
        with self.assertRaisesRegex(ValueError, "missing columns"):
            MarkerTable(["ER"], pd.DataFrame({"ER": [0], "carrier": [1.0]}))


if __name__ == '__main__':
    unittest.main()
