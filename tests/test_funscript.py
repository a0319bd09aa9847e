import json
import unittest

from errors import FunscriptError
from funscript import Action, FunscriptData


class TestFunscriptData(unittest.TestCase):
    def test_loads_actions_and_keeps_extra_keys(self):
        text = json.dumps({
            "version": "1.0",
            "inverted": False,
            "range": 90,
            "actions": [{"at": 0, "pos": 10}, {"at": 250, "pos": 95.5}],
        })
        data = FunscriptData.loads(text)

        self.assertEqual(data.actions, [Action(0, 10.0), Action(250, 95.5)])
        self.assertEqual(data.extra, {"version": "1.0", "inverted": False, "range": 90})

        dumped = json.loads(data.dumps())
        self.assertEqual(dumped["range"], 90)
        self.assertEqual(dumped["actions"][1], {"at": 250, "pos": 95.5})

    def test_float_timestamps_are_truncated_to_ms(self):
        data = FunscriptData.from_dict({"actions": [{"at": 12.9, "pos": 0}]})
        self.assertEqual(data.actions[0].at, 12)

    def test_invalid_json(self):
        with self.assertRaises(FunscriptError):
            FunscriptData.loads("{not json")

    def test_schema_mismatch(self):
        bad_payloads = [
            [],
            {},
            {"actions": {}},
            {"actions": [{"at": 0}]},
            {"actions": [{"pos": 0}]},
            {"actions": [{"at": "soon", "pos": 0}]},
            {"actions": [{"at": 0, "pos": None}]},
            {"actions": [{"at": -5, "pos": 0}]},
            {"actions": [5]},
            {"actions": [{"at": float("inf"), "pos": 0}]},
            {"actions": [{"at": float("nan"), "pos": 0}]},
            {"actions": [{"at": 0, "pos": float("inf")}]},
        ]
        for payload in bad_payloads:
            with self.subTest(payload=payload):
                with self.assertRaises(FunscriptError):
                    FunscriptData.from_dict(payload)

    def test_action_is_immutable(self):
        action = Action(0, 1.0)
        with self.assertRaises(AttributeError):
            action.pos = 2.0  # type: ignore[misc]


if __name__ == "__main__":
    unittest.main()
