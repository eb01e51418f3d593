import unittest

from featureplus.models import FEATURE, PROJECT, TASK, Feature, Project, TagMembership, Task, parse_entity


class ModelParsingTests(unittest.TestCase):
    def test_numeric_ids_and_zero_references(self) -> None:
        feature = parse_entity(
            FEATURE,
            {"id": 12, "project_id": 3, "parent_feature_id": 0, "title": "Checkout", "assignee_id": 0},
        )

        self.assertIsInstance(feature, Feature)
        self.assertEqual(feature.id, "12")
        self.assertEqual(feature.project_id, "3")
        self.assertIsNone(feature.parent_feature_id)
        self.assertEqual(feature.assignee_id, "")
        self.assertTrue(feature.is_group)

    def test_feature_tags_from_membership_rows(self) -> None:
        feature = parse_entity(
            FEATURE,
            {"id": 1, "project_id": 1, "title": "x", "tags": [{"tag_name": "api", "feature_id": 1}]},
        )
        self.assertEqual(feature.tags, ["api"])

    def test_project_config_defaults_are_merged(self) -> None:
        project = parse_entity(PROJECT, {"id": 1, "name": "Demo", "config": {"task_types": ["QA"]}})

        self.assertIsInstance(project, Project)
        self.assertEqual(project.task_types, ["QA"])
        self.assertIn("Payment", project.feature_categories)

    def test_empty_project_config_uses_defaults(self) -> None:
        project = Project(id="1", name="Demo", config=None)
        self.assertEqual(project.task_types, ["UI", "Backend", "DB"])

    def test_task_owner_and_nested_rows(self) -> None:
        task = parse_entity(
            TASK,
            {
                "id": 5,
                "feature_id": 0,
                "sub_feature_id": 9,
                "task_name": "Wire API",
                "comments": [{"id": 1, "task_id": 5, "user_id": 2, "content": "ok", "attachment_id": 0}],
                "attachments": None,
            },
        )

        self.assertIsInstance(task, Task)
        self.assertEqual(task.owner_id, "9")
        self.assertIsNone(task.feature_id)
        self.assertEqual(task.comments[0].user_id, "2")
        self.assertIsNone(task.comments[0].attachment_id)
        self.assertEqual(task.attachments, [])

    def test_unknown_fields_are_ignored(self) -> None:
        feature = parse_entity(FEATURE, {"id": 1, "project_id": 1, "title": "x", "legacy": True})
        self.assertFalse(hasattr(feature, "legacy"))

    def test_tag_membership_rows(self) -> None:
        row = TagMembership.model_validate({"feature_id": 7, "tag_name": "api", "sort_order": 0})
        self.assertEqual(row.feature_id, "7")
        self.assertEqual(row.created_by_user, "")

    def test_unknown_entity_type_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            parse_entity("comment", {})


if __name__ == "__main__":
    unittest.main()
