# tests/test_data.py

import os
import sys
import unittest

import numpy as np
import pandas as pd

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from synthetic import nuclear_family
from penetrance.config import MALE, FEMALE
from penetrance.data import (
    combine_families, prep_ages, transform_pedigree, order_individuals, validate_pedigree_rows,
)
from penetrance.modifiers import MarkerTable, MarkerTestModifier, TwinCollapse


class TestCombineFamilies(unittest.TestCase):

    def test_list_of_frames(self):
        fam = nuclear_family().drop(columns="PedigreeID")
        combined = combine_families([fam, fam])
        self.assertEqual(len(combined), 8)
        self.assertListEqual(sorted(combined["PedigreeID"].unique()), [1, 2])
        self.assertNotIn("PedigreeID", fam.columns)

    def test_single_frame_requires_pedigree_id(self):
        with self.assertRaisesRegex(ValueError, "PedigreeID"):
            combine_families(nuclear_family().drop(columns="PedigreeID"))

    def test_empty_and_wrong_types(self):
        with self.assertRaises(ValueError):
            combine_families([])
        with self.assertRaises(TypeError):
            combine_families("not a frame")
        with self.assertRaisesRegex(ValueError, "missing required columns"):
            combine_families(nuclear_family().drop(columns="CurAge"))


class TestPrepAges(unittest.TestCase):

    def test_missing_ages_become_unaffected_at_one(self):
        df = nuclear_family()
        df.loc[0, "AgeCOL"] = np.nan   # affected father with unknown age
        prepared = prep_ages(df)
        self.assertEqual(prepared.loc[0, "AgeCOL"], 1)
        self.assertEqual(prepared.loc[0, "isAffCOL"], 0)
        self.assertEqual(prepared.loc[1, "AgeCOL"], 1)

    def test_unknown_affected_ages_can_be_kept(self):
        df = nuclear_family()
        df.loc[0, "AgeCOL"] = np.nan
        prepared = prep_ages(df, keep_unknown_affected_ages=True)
        self.assertTrue(np.isnan(prepared.loc[0, "AgeCOL"]))
        self.assertEqual(prepared.loc[0, "isAffCOL"], 1)

    def test_current_age_covers_diagnosis_age(self):
        df = nuclear_family()
        df.loc[2, "CurAge"] = 30     # diagnosed at 42
        df.loc[3, "CurAge"] = np.nan
        prepared = prep_ages(df)
        self.assertEqual(prepared.loc[2, "CurAge"], 42)
        self.assertEqual(prepared.loc[3, "CurAge"], 1)

    def test_remove_proband(self):
        prepared = prep_ages(nuclear_family(), remove_proband=True)
        self.assertTrue(np.isnan(prepared.loc[2, "MLH1"]))
        self.assertEqual(prepared.loc[2, "isAffCOL"], 0)
        self.assertEqual(prepared.loc[0, "isAffCOL"], 1)


class TestTransformPedigree(unittest.TestCase):

    def test_rows(self):
        rows = transform_pedigree(prep_ages(nuclear_family()), "Colorectal", "MLH1")
        self.assertListEqual(rows["sex"].tolist(), [MALE, FEMALE, FEMALE, MALE])
        self.assertListEqual(rows["geno"].tolist(), ["1/2", "", "1/2", "1/1"])
        self.assertListEqual(rows["age"].tolist(), [55.0, 68.0, 42.0, 40.0])
        self.assertTrue(rows["mother"].isna()[:2].all())
        self.assertEqual(rows.loc[2, "mother"], 2)
        self.assertIn("MLH1", rows.columns)

    def test_zero_parent_means_founder(self):
        df = nuclear_family()
        df.loc[:1, ["MotherID", "FatherID"]] = 0
        rows = transform_pedigree(prep_ages(df), "COL", "MLH1")
        self.assertTrue(rows["father"].isna()[:2].all())

    def test_missing_gene_column(self):
        rows = transform_pedigree(prep_ages(nuclear_family()), "COL", "MSH2")
        self.assertTrue((rows["geno"] == "").all())

    def test_unknown_sex_code(self):
        df = nuclear_family()
        df.loc[0, "Sex"] = 2
        with self.assertRaisesRegex(ValueError, "Sex must be coded"):
            transform_pedigree(prep_ages(df), "COL", "MLH1")

    def test_missing_cancer_columns(self):
        with self.assertRaisesRegex(ValueError, "isAffBC"):
            transform_pedigree(prep_ages(nuclear_family()), "Breast", "MLH1")

    def test_float_twin_labels_mean_no_twin(self):
        df = nuclear_family()
        df["Twins"] = [0.0, 0.0, np.nan, np.nan]
        rows = transform_pedigree(prep_ages(df), "COL", "MLH1")
        self.assertListEqual(rows["twins"].tolist(), [0, 0, 0, 0])
        self.assertEqual(len(TwinCollapse(rows).rows), 4)

    def test_families_with_and_without_twins_column(self):
        with_twins = nuclear_family(1)
        with_twins.loc[[2, 3], "Twins"] = 1
        without_twins = nuclear_family(2).drop(columns="Twins")
        rows = transform_pedigree(prep_ages(combine_families([with_twins, without_twins])), "COL", "MLH1")
        self.assertListEqual(rows["twins"].tolist(), [0, 0, 1, 1, 0, 0, 0, 0])
        collapsed = TwinCollapse(rows).rows
        self.assertEqual(len(collapsed), 7)
        self.assertListEqual(collapsed[collapsed["family"] == 2]["indiv"].tolist(), [1, 2, 3, 4])
        self.assertTrue(collapsed[collapsed["family"] == 2]["mother"].isna()[:2].all())

    def test_extra_marker_columns_carried(self):
        df = nuclear_family()
        df["MSI"] = [1, np.nan, np.nan, np.nan]
        df["BRAF"] = [0, np.nan, np.nan, np.nan]
        self.assertNotIn("BRAF", transform_pedigree(prep_ages(df), "COL", "MLH1").columns)

        table = pd.DataFrame({
            "MSI": [0, 0, 1, 1],
            "BRAF": [0, 1, 0, 1],
            "noncarrier": [0.6, 0.2, 0.15, 0.05],
            "carrier": [0.1, 0.05, 0.8, 0.05],
        })
        modifier = MarkerTestModifier({"COL": MarkerTable(["MSI", "BRAF"], table)})
        rows = transform_pedigree(prep_ages(df), "COL", "MLH1", markers=modifier.markers)
        self.assertListEqual(list(rows.columns[-2:]), ["MSI", "BRAF"])
        factors = modifier.factors(rows, "COL", 2)
        np.testing.assert_allclose(factors[0], [0.15, 0.8])


class TestPedigreeStructure(unittest.TestCase):

    def test_parents_before_offspring(self):
        order = order_individuals({3: (1, 2), 1: (None, None), 4: (3, 5), 2: (None, None), 5: (None, None)})
        self.assertLess(order.index(1), order.index(3))
        self.assertLess(order.index(3), order.index(4))

    def test_cycle_and_self_parent(self):
        with self.assertRaisesRegex(ValueError, "cycle"):
            order_individuals({1: (2, 3), 2: (1, 3), 3: (None, None)})
        with self.assertRaisesRegex(ValueError, "own parent"):
            order_individuals({1: (1, 2), 2: (None, None)})

    def _rows(self):
        return transform_pedigree(prep_ages(nuclear_family()), "COL", "MLH1")

    def test_valid_rows_pass(self):
        validate_pedigree_rows(self._rows())

    def test_single_parent_rejected(self):
        rows = self._rows()
        rows.loc[2, "father"] = np.nan
        with self.assertRaisesRegex(ValueError, "exactly one known parent"):
            validate_pedigree_rows(rows)

    def test_parent_outside_family(self):
        rows = self._rows()
        rows.loc[3, "mother"] = 99
        with self.assertRaisesRegex(ValueError, "not members"):
            validate_pedigree_rows(rows)

    def test_duplicate_ids(self):
        rows = self._rows()
        rows.loc[3, "indiv"] = 3
        with self.assertRaisesRegex(ValueError, "duplicated"):
            validate_pedigree_rows(rows)

    def test_diagnosis_after_censoring(self):
        rows = self._rows()
        rows.loc[0, "cur_age"] = 50
        with self.assertRaisesRegex(ValueError, "censoring"):
            validate_pedigree_rows(rows)


if __name__ == '__main__':
    unittest.main()
