"""
Tests for laserdesk.services.rules

Covers: template resolution (priority, specificity, side compatibility),
asset resolution and name extraction, against a temporary SQLite database.
"""
import unittest

from laserdesk.models.order import Side
from laserdesk.models.rules import AssetType, TemplateRule
from laserdesk.services.rules import (
    RuleEngine,
    extract_name,
    is_side_compatible,
    sort_template_rules,
    template_side,
)

from support import TempDatabase, add_asset_rule, add_template_rule


class TestTemplateSide(unittest.TestCase):

    def test_markers(self):
        self.assertEqual(template_side("mug-fronte.lbrn2"), Side.FRONT)
        self.assertEqual(template_side("mug_front.lbrn2"), Side.FRONT)
        self.assertEqual(template_side("Mug-RETRO.lbrn2"), Side.RETRO)
        self.assertEqual(template_side("board back.lbrn2"), Side.RETRO)
        self.assertIsNone(template_side("mug.lbrn2"))

    def test_marker_must_be_a_suffix(self):
        self.assertIsNone(template_side("retro-mug.lbrn2"))
        self.assertIsNone(template_side("backpack.lbrn2"))

    def test_side_compatibility(self):
        self.assertTrue(is_side_compatible("mug-fronte.lbrn2", Side.FRONT))
        self.assertTrue(is_side_compatible("mug.lbrn2", Side.FRONT))
        self.assertFalse(is_side_compatible("mug-retro.lbrn2", Side.FRONT))
        self.assertTrue(is_side_compatible("mug-retro.lbrn2", Side.RETRO))
        self.assertFalse(is_side_compatible("mug.lbrn2", Side.RETRO))
        self.assertFalse(is_side_compatible("mug-fronte.lbrn2", Side.RETRO))


class TestSortTemplateRules(unittest.TestCase):

    def test_priority_then_pattern_length(self):
        rules = [
            TemplateRule(id=1, sku_pattern="MUG", template_filename="a.lbrn2", priority=0),
            TemplateRule(id=2, sku_pattern="MUG-RED", template_filename="b.lbrn2", priority=0),
            TemplateRule(id=3, sku_pattern="M", template_filename="c.lbrn2", priority=9),
        ]
        ordered = [r.id for r in sort_template_rules(rules)]
        self.assertEqual(ordered, [3, 2, 1])


class TestResolveTemplate(unittest.TestCase):

    def setUp(self):
        self.db = TempDatabase()
        self.addCleanup(self.db.close)
        self.engine = RuleEngine(self.db.session)

    def test_no_rules(self):
        self.assertIsNone(self.engine.resolve_template("MUG-RED-01", Side.FRONT))

    def test_no_sku(self):
        add_template_rule(self.db, "MUG", "mug.lbrn2")
        self.assertIsNone(self.engine.resolve_template(None, Side.FRONT))
        self.assertIsNone(self.engine.resolve_template("", Side.FRONT))

    def test_higher_priority_wins_over_longer_pattern(self):
        add_template_rule(self.db, "MUG", "a-fronte.lbrn2", priority=1)
        add_template_rule(self.db, "MUG-RED", "b-fronte.lbrn2", priority=5)
        self.assertEqual(self.engine.resolve_template("MUG-RED-01", Side.FRONT), "b-fronte.lbrn2")

    def test_priority_beats_specificity(self):
        add_template_rule(self.db, "MUG-RED", "specific-fronte.lbrn2", priority=1)
        add_template_rule(self.db, "MUG", "general-fronte.lbrn2", priority=5)
        self.assertEqual(self.engine.resolve_template("MUG-RED-01", Side.FRONT), "general-fronte.lbrn2")

    def test_longer_pattern_wins_at_equal_priority(self):
        add_template_rule(self.db, "MUG", "general.lbrn2")
        add_template_rule(self.db, "MUG-RED", "specific.lbrn2")
        self.assertEqual(self.engine.resolve_template("MUG-RED-01", Side.FRONT), "specific.lbrn2")

    def test_match_is_case_insensitive(self):
        add_template_rule(self.db, "mug-red", "mug.lbrn2")
        self.assertEqual(self.engine.resolve_template("MUG-RED-01", Side.FRONT), "mug.lbrn2")

    def test_incompatible_side_falls_through(self):
        add_template_rule(self.db, "MUG-RED", "mug-retro.lbrn2", priority=10)
        add_template_rule(self.db, "MUG", "mug-fronte.lbrn2", priority=1)
        self.assertEqual(self.engine.resolve_template("MUG-RED-01", Side.FRONT), "mug-fronte.lbrn2")
        self.assertEqual(self.engine.resolve_template("MUG-RED-01", Side.RETRO), "mug-retro.lbrn2")

    def test_retro_requires_retro_marker(self):
        add_template_rule(self.db, "MUG", "mug.lbrn2")
        self.assertEqual(self.engine.resolve_template("MUG-RED-01", Side.FRONT), "mug.lbrn2")
        self.assertIsNone(self.engine.resolve_template("MUG-RED-01", Side.RETRO))

    def test_no_matching_pattern(self):
        add_template_rule(self.db, "BOARD", "board.lbrn2")
        self.assertIsNone(self.engine.resolve_template("MUG-RED-01", Side.FRONT))


class TestResolveAssets(unittest.TestCase):

    def setUp(self):
        self.db = TempDatabase()
        self.addCleanup(self.db.close)
        self.engine = RuleEngine(self.db.session)

    def test_empty_text(self):
        add_asset_rule(self.db, "flowers", AssetType.IMAGE, "flowers.png")
        self.assertTrue(self.engine.resolve_assets(None).is_empty())
        self.assertTrue(self.engine.resolve_assets("").is_empty())

    def test_each_slot_filled(self):
        add_asset_rule(self.db, "flowers", AssetType.IMAGE, "flowers.png")
        add_asset_rule(self.db, "script", AssetType.FONT, "Great Vibes")
        add_asset_rule(self.db, "gold", AssetType.COLOR, "#D4AF37")
        assets = self.engine.resolve_assets("Name: Anna, FLOWERS, Script font, gold")
        self.assertEqual(assets.image, "flowers.png")
        self.assertEqual(assets.font, "Great Vibes")
        self.assertEqual(assets.color, "#D4AF37")

    def test_last_matching_rule_wins(self):
        add_asset_rule(self.db, "heart", AssetType.IMAGE, "heart.png")
        add_asset_rule(self.db, "flower", AssetType.IMAGE, "flower.png")
        assets = self.engine.resolve_assets("hearts and flowers")
        self.assertEqual(assets.image, "flower.png")
        self.assertIsNone(assets.font)

    def test_no_match(self):
        add_asset_rule(self.db, "heart", AssetType.IMAGE, "heart.png")
        self.assertTrue(self.engine.resolve_assets("Engrave: Luca").is_empty())


class TestExtractName(unittest.TestCase):

    def test_engrave_marker(self):
        self.assertEqual(extract_name("Engrave: Anna, font: script"), "Anna")

    def test_name_marker_case_insensitive(self):
        self.assertEqual(extract_name("color red, NAME:  Famiglia Bianchi , hearts"), "Famiglia Bianchi")

    def test_runs_to_end_without_comma(self):
        self.assertEqual(extract_name("engrave:Luca Neri"), "Luca Neri")

    def test_no_marker(self):
        self.assertEqual(extract_name("Anna Rossi"), "")
        self.assertEqual(extract_name(None), "")
        self.assertEqual(extract_name(""), "")


if __name__ == '__main__':
    unittest.main()
