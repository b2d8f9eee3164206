from __future__ import annotations

import os
import tempfile
import unittest
from unittest import mock

from fastapi.testclient import TestClient

from activity_track.db import PersistenceError
from activity_track.main import create_app
from activity_track.settings import Settings


METRICS = {
    "data": {
        "metrics": [
            {
                "name": "step_count",
                "units": "count",
                "data": [
                    {"date": "2024-01-03 09:00:00 +0100", "qty": 7000.4},
                    {"date": "2024-01-01 09:00:00 +0100", "qty": 5000},
                    {"date": "2024-01-02 09:00:00 +0100", "qty": 6000},
                ],
            },
            {
                "name": "active_energy",
                "units": "kJ",
                "data": [{"date": "2024-01-01 10:00:00 +0100", "qty": 4.184}],
            },
        ]
    }
}

WORKOUTS = {
    "data": {
        "workouts": [
            {
                "name": "Outdoor Walk",
                "start": "2024-01-01 12:00:00 +0100",
                "duration": 1200,
                "activeEnergyBurned": {"qty": 80, "units": "kcal"},
            },
            {"name": "Outdoor Walk", "start": "2024-01-01 18:00:00 +0100", "duration": 600},
        ]
    }
}


class MainEndpointsTests(unittest.TestCase):
    api_key: str | None = None

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.settings = Settings(
            db_path=os.path.join(self._tmp.name, "activity.sqlite"),
            api_key=self.api_key,
        )
        self.client_ctx = TestClient(create_app(self.settings))
        self.client = self.client_ctx.__enter__()
        self.headers = {"X-Api-Key": self.api_key} if self.api_key else {}

    def tearDown(self) -> None:
        self.client_ctx.__exit__(None, None, None)
        self._tmp.cleanup()

    def test_ingest_and_read_daily(self) -> None:
        r1 = self.client.post("/steps", headers=self.headers, json=METRICS)
        self.assertEqual(r1.status_code, 200)
        self.assertEqual(r1.json(), {"ok": True, "applied": 4})

        r2 = self.client.post("/workouts", headers=self.headers, json=WORKOUTS)
        self.assertEqual(r2.status_code, 200)
        self.assertEqual(r2.json()["applied"], 2)

        daily = self.client.get("/api/daily", headers=self.headers)
        self.assertEqual(daily.status_code, 200)
        rows = daily.json()
        self.assertEqual([r["date"] for r in rows], ["2024-01-01", "2024-01-02", "2024-01-03"])

        first = rows[0]
        self.assertEqual(first["steps"], 5000)
        self.assertAlmostEqual(first["activeKcal"], 81.0)
        self.assertEqual(first["restingKcal"], 0.0)
        self.assertAlmostEqual(first["totalKcal"], 81.0)
        self.assertEqual(first["workoutCount"], 2)
        self.assertEqual(first["workoutMinutes"], 30.0)
        self.assertEqual(first["workoutNames"], ["Outdoor Walk"])
        self.assertEqual(rows[2]["steps"], 7000)

    def test_malformed_workouts_rejected_without_mutation(self) -> None:
        self.client.post("/steps", headers=self.headers, json=METRICS)
        before = self.client.get("/api/daily", headers=self.headers).json()

        single = {"data": {"workouts": {"name": "Walk", "start": "2024-01-01 10:00:00 +0000", "duration": 600}}}
        r = self.client.post("/workouts", headers=self.headers, json=single)
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["detail"], "Invalid workout payload")

        self.assertEqual(self.client.get("/api/daily", headers=self.headers).json(), before)

    def test_malformed_samples_do_not_abort_batch(self) -> None:
        payload = {
            "data": {
                "metrics": [
                    {"name": "step_count", "data": [{"qty": 10}, {"date": "2024-01-09 00:00:00", "qty": "n/a"}]},
                    {"name": "active_energy", "units": "kcal", "data": [{"date": "2024-01-09 00:00:00", "qty": 12}]},
                ]
            }
        }
        r = self.client.post("/steps", headers=self.headers, json=payload)
        self.assertEqual(r.status_code, 200)
        by_date = {row["date"]: row for row in self.client.get("/api/daily", headers=self.headers).json()}
        self.assertEqual(by_date["1970-01-01"]["steps"], 10)
        self.assertEqual(by_date["2024-01-09"]["steps"], 0)
        self.assertEqual(by_date["2024-01-09"]["activeKcal"], 12.0)

    def test_durable_write_failure_is_500(self) -> None:
        engine = self.client.app.state.engine
        with mock.patch.object(engine.repository, "save", side_effect=PersistenceError("disk full")):
            r = self.client.post("/steps", headers=self.headers, json=METRICS)
        self.assertEqual(r.status_code, 500)
        self.assertEqual(r.json()["detail"], "Failed to persist daily stats")

    def test_restart_keeps_data(self) -> None:
        self.client.post("/steps", headers=self.headers, json=METRICS)
        self.client.post("/workouts", headers=self.headers, json=WORKOUTS)
        before = self.client.get("/api/daily", headers=self.headers).json()

        with TestClient(create_app(self.settings)) as fresh:
            after = fresh.get("/api/daily", headers=self.headers).json()
        self.assertEqual(after, before)

    def test_csv_export(self) -> None:
        self.client.post("/workouts", headers=self.headers, json=WORKOUTS)
        r = self.client.get("/api/daily.csv", headers=self.headers)
        self.assertEqual(r.status_code, 200)
        self.assertTrue(r.headers["content-type"].startswith("text/csv"))
        lines = r.text.strip().splitlines()
        self.assertEqual(lines[0], "date,steps,activeKcal,restingKcal,totalKcal,workoutCount,workoutMinutes,workoutNames")
        self.assertTrue(lines[1].startswith("2024-01-01,0,80.0,0.0,80.0,2,30.0,"))

    def test_status(self) -> None:
        empty = self.client.get("/api/status", headers=self.headers).json()
        self.assertEqual(empty["totalDays"], 0)
        self.assertIsNone(empty["lastDate"])
        self.assertEqual(empty["persistenceMode"], "snapshot")

        self.client.post("/steps", headers=self.headers, json=METRICS)
        status = self.client.get("/api/status", headers=self.headers).json()
        self.assertEqual(status["totalDays"], 3)
        self.assertEqual(status["lastDate"], "2024-01-03")

    def test_out_of_range_energy_reads_back_as_numbers(self) -> None:
        payload = {
            "data": {
                "metrics": [
                    {
                        "name": "active_energy",
                        "units": "kcal",
                        "data": [
                            {"date": "2024-01-01 10:00:00 +0000", "qty": 1e308},
                            {"date": "2024-01-01 11:00:00 +0000", "qty": 1e308},
                            {"date": "2024-01-01 12:00:00 +0000", "qty": 25},
                        ],
                    }
                ]
            }
        }
        self.assertEqual(self.client.post("/steps", headers=self.headers, json=payload).status_code, 200)
        [row] = self.client.get("/api/daily", headers=self.headers).json()
        self.assertEqual(row["activeKcal"], 25.0)
        self.assertEqual(row["totalKcal"], 25.0)

    def test_startup_warns_when_unauthenticated(self) -> None:
        with self.assertLogs("activity_track.main", level="WARNING") as logs:
            with TestClient(create_app(Settings(db_path=self.settings.db_path))):
                pass
        self.assertTrue(any("API_KEY not set" in line for line in logs.output))

    def test_dashboard(self) -> None:
        r = self.client.get("/")
        self.assertEqual(r.status_code, 200)
        self.assertIn("/api/daily", r.text)


class ApiKeyEndpointsTests(MainEndpointsTests):
    api_key = "test-api-key"

    def test_requires_api_key(self) -> None:
        self.assertEqual(self.client.get("/api/daily").status_code, 401)
        self.assertEqual(self.client.post("/steps", json=METRICS).status_code, 401)
        self.assertEqual(
            self.client.get("/api/daily", headers={"X-Api-Key": "wrong"}).status_code, 401
        )


if __name__ == "__main__":
    unittest.main()
