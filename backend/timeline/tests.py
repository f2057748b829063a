from datetime import date, datetime, timedelta
from datetime import timezone as dt_timezone

from django.test import SimpleTestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from .models import Job, Property, Task
from .scheduling import (
    build_timeline,
    classify_urgency,
    days_until_due,
    describe_dependency,
    detect_circular_dependencies,
    find_dangling_dependencies,
    sort_by_dependencies,
    task_progress,
)


def _task(id, title=None, **kw):
    t = {"id": id, "property_id": 1, "title": title or f"task{id}",
         "depends_on_task_id": None, "relative_due_days": None, "relative_direction": "after"}
    t.update(kw)
    return t


def _ids(tasks):
    return [t["id"] for t in tasks]


class DueDateTests(SimpleTestCase):
    def test_no_date_is_none(self):
        self.assertIsNone(days_until_due(None))
        self.assertIsNone(classify_urgency(None))

    def test_calendar_day_boundaries(self):
        now = datetime(2025, 3, 10, 18, 30)
        self.assertEqual(days_until_due(datetime(2025, 3, 10, 8, 0), now), 0)
        self.assertEqual(days_until_due(datetime(2025, 3, 9, 23, 59), now), -1)
        self.assertEqual(days_until_due(datetime(2025, 3, 11, 0, 1), now), 1)

    def test_accepts_dates_and_iso_strings(self):
        today = date.today()
        self.assertEqual(days_until_due(today + timedelta(days=4)), 4)
        self.assertEqual(days_until_due("2025-03-15", date(2025, 3, 10)), 5)
        self.assertEqual(days_until_due("2025-03-05T09:00:00", date(2025, 3, 10)), -5)

    def test_aware_datetimes_use_given_zone(self):
        tokyo = timezone.get_fixed_timezone(9 * 60)
        due = datetime(2025, 3, 10, 20, 0, tzinfo=dt_timezone.utc)  # 11 March in Tokyo
        self.assertEqual(days_until_due(due, date(2025, 3, 10), tz=tokyo), 1)
        self.assertEqual(days_until_due(due, date(2025, 3, 10), tz=dt_timezone.utc), 0)

    def test_invalid_string_raises(self):
        with self.assertRaises(ValueError):
            days_until_due("next tuesday")

    def test_urgency_bands(self):
        self.assertEqual(classify_urgency(-2), "overdue")
        self.assertEqual(classify_urgency(0), "due_today")
        self.assertEqual(classify_urgency(3), "due_soon")
        self.assertEqual(classify_urgency(7), "upcoming")
        self.assertEqual(classify_urgency(30), "later")


class ProgressTests(SimpleTestCase):
    def test_no_jobs(self):
        self.assertEqual(task_progress({"id": 1}, []), {"progress": 0, "fully_completed": False})

    def test_all_completed(self):
        jobs = [{"task_id": 1, "status": "completed"}, {"task_id": 1, "status": "completed"}]
        self.assertEqual(task_progress({"id": 1}, jobs), {"progress": 100, "fully_completed": True})

    def test_half_completed_ignores_other_tasks(self):
        jobs = [
            {"task_id": 1, "status": "completed"},
            {"task_id": 1, "status": "in_progress"},
            {"task_id": 2, "status": "completed"},
        ]
        self.assertEqual(task_progress({"id": 1}, jobs), {"progress": 50, "fully_completed": False})

    def test_rounds_half_up(self):
        jobs = [{"task_id": 1, "status": "completed"}] + [{"task_id": 1, "status": "pending"}] * 7
        self.assertEqual(task_progress({"id": 1}, jobs)["progress"], 13)


class DescriptionTests(SimpleTestCase):
    def test_days_after(self):
        tasks = [_task(1, "Survey"), _task(2, "Legal", depends_on_task_id=1, relative_due_days=5)]
        self.assertEqual(describe_dependency(tasks[1], tasks), '5 days after "Survey" completes')

    def test_one_day_before(self):
        tasks = [_task(1, "Survey"),
                 _task(2, "Book", depends_on_task_id=1, relative_due_days=1, relative_direction="before")]
        self.assertEqual(describe_dependency(tasks[1], tasks), '1 day before "Survey" starts')

    def test_immediate(self):
        tasks = [_task(1, "Survey"), _task(2, depends_on_task_id=1, relative_direction="before")]
        self.assertEqual(describe_dependency(tasks[1], tasks), 'before "Survey"')

    def test_direction_defaults_to_after(self):
        tasks = [_task(1, "Survey"), _task(2, depends_on_task_id=1, relative_direction=None)]
        self.assertEqual(describe_dependency(tasks[1], tasks), 'after "Survey"')

    def test_no_or_missing_dependency(self):
        tasks = [_task(1), _task(2, depends_on_task_id=99)]
        self.assertIsNone(describe_dependency(tasks[0], tasks))
        self.assertIsNone(describe_dependency(tasks[1], tasks))


class SorterTests(SimpleTestCase):
    def test_empty(self):
        self.assertEqual(sort_by_dependencies([]), [])

    def test_no_dependencies_keeps_input_order(self):
        tasks = [_task(3), _task(1), _task(2)]
        self.assertEqual(_ids(sort_by_dependencies(tasks)), [3, 1, 2])

    def test_survey_then_legal(self):
        tasks = [_task(1, "Survey"), _task(2, "Legal", depends_on_task_id=1, relative_due_days=5)]
        self.assertEqual([t["title"] for t in sort_by_dependencies(tasks)], ["Survey", "Legal"])

    def test_before_goes_in_front(self):
        tasks = [_task(1), _task(2, depends_on_task_id=1, relative_direction="before")]
        self.assertEqual(_ids(sort_by_dependencies(tasks)), [2, 1])

    def test_dependency_resolved_first_when_listed_later(self):
        tasks = [_task(1), _task(2, depends_on_task_id=4), _task(3), _task(4)]
        self.assertEqual(_ids(sort_by_dependencies(tasks)), [1, 4, 2, 3])

    def test_chain_adjacency(self):
        tasks = [_task(3, depends_on_task_id=2), _task(2, depends_on_task_id=1), _task(1)]
        self.assertEqual(_ids(sort_by_dependencies(tasks)), [1, 2, 3])

    def test_dangling_reference_is_appended(self):
        tasks = [_task(1, depends_on_task_id=42), _task(2)]
        self.assertEqual(_ids(sort_by_dependencies(tasks)), [1, 2])
        tasks = [_task(1), _task(2, depends_on_task_id=42), _task(3)]
        self.assertEqual(_ids(sort_by_dependencies(tasks)), [1, 2, 3])

    def test_other_property_dependency_is_dangling(self):
        tasks = [_task(1, property_id=2), _task(2), _task(3, depends_on_task_id=1, relative_direction="before")]
        self.assertEqual(_ids(sort_by_dependencies(tasks)), [1, 2, 3])

    def test_mutual_cycle_terminates(self):
        tasks = [_task(1, depends_on_task_id=2), _task(2, depends_on_task_id=1)]
        self.assertEqual(_ids(sort_by_dependencies(tasks)), [2, 1])

    def test_mutual_before_cycle_keeps_entry_task_first(self):
        tasks = [_task(1, depends_on_task_id=2, relative_direction="before"),
                 _task(2, depends_on_task_id=1, relative_direction="before")]
        self.assertEqual(_ids(sort_by_dependencies(tasks)), [1, 2])

    def test_before_dependency_listed_later(self):
        tasks = [_task(1), _task(2, depends_on_task_id=3, relative_direction="before"), _task(3)]
        self.assertEqual(_ids(sort_by_dependencies(tasks)), [1, 2, 3])

    def test_self_dependency(self):
        tasks = [_task(1, depends_on_task_id=1), _task(2)]
        self.assertEqual(_ids(sort_by_dependencies(tasks)), [1, 2])

    def test_no_duplicates_with_shared_dependency(self):
        tasks = [_task(1), _task(2, depends_on_task_id=1), _task(3, depends_on_task_id=1),
                 _task(4, depends_on_task_id=5), _task(5, depends_on_task_id=4)]
        out = _ids(sort_by_dependencies(tasks))
        self.assertEqual(sorted(out), [1, 2, 3, 4, 5])
        self.assertEqual(out[:3], [1, 3, 2])

    def test_input_not_mutated(self):
        tasks = [_task(2, depends_on_task_id=1), _task(1)]
        sort_by_dependencies(tasks)
        self.assertEqual(_ids(tasks), [2, 1])


class ReferentialCheckTests(SimpleTestCase):
    def test_dangling(self):
        tasks = [_task(1), _task(2, depends_on_task_id=9), _task(3, depends_on_task_id=1)]
        self.assertEqual(find_dangling_dependencies(tasks), [2])

    def test_cycles(self):
        tasks = [_task(1, depends_on_task_id=2), _task(2, depends_on_task_id=3),
                 _task(3, depends_on_task_id=1), _task(4, depends_on_task_id=4), _task(5)]
        self.assertEqual(detect_circular_dependencies(tasks), [[1, 2, 3, 1], [4, 4]])

    def test_acyclic(self):
        tasks = [_task(1), _task(2, depends_on_task_id=1)]
        self.assertEqual(detect_circular_dependencies(tasks), [])


class BuildTimelineTests(SimpleTestCase):
    def test_annotations(self):
        now = date(2025, 3, 10)
        tasks = [
            _task(2, "Legal", depends_on_task_id=1, relative_due_days=5),
            _task(1, "Survey", due_date=date(2025, 3, 9)),
        ]
        jobs = [
            {"id": 10, "task_id": 1, "status": "completed", "due_date": None},
            {"id": 11, "task_id": 1, "status": "pending", "due_date": date(2025, 3, 12)},
        ]
        timeline = build_timeline(tasks, jobs, now=now)

        self.assertEqual(_ids(timeline), [1, 2])
        survey, legal = timeline
        self.assertEqual(survey["progress"], 50)
        self.assertEqual(survey["days_until_due"], -1)
        self.assertEqual(survey["urgency"], "overdue")
        self.assertIsNone(survey["dependency_description"])
        self.assertEqual([j["urgency"] for j in survey["jobs"]], [None, "due_soon"])
        self.assertEqual(legal["dependency_description"], '5 days after "Survey" completes')
        self.assertEqual(legal["jobs"], [])
        self.assertNotIn("progress", tasks[1])


class TimelineApiTests(APITestCase):
    def setUp(self):
        self.prop = Property.objects.create(address="12 Mill Lane", type="3-bed house")
        self.survey = Task.objects.create(property=self.prop, title="Survey", category="surveying")
        self.legal = Task.objects.create(
            property=self.prop, title="Legal", category="legal",
            depends_on_task=self.survey, relative_due_days=5,
            due_date=timezone.now() + timedelta(days=2),
        )

    def test_timeline_orders_and_annotates(self):
        kitchen = Task.objects.create(property=self.prop, title="Kitchen")
        Task.objects.filter(pk=self.survey.pk).update(depends_on_task=kitchen)
        Job.objects.create(task=self.legal, property=self.prop, name="Call solicitor", status="completed")
        Job.objects.create(task=self.legal, property=self.prop, name="Sign", status="pending")

        resp = self.client.get(f"/api/properties/{self.prop.pk}/timeline/")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        body = resp.json()
        self.assertEqual([t["title"] for t in body["tasks"]], ["Kitchen", "Survey", "Legal"])
        legal = body["tasks"][2]
        self.assertEqual(legal["progress"], 50)
        self.assertFalse(legal["fully_completed"])
        self.assertEqual(legal["days_until_due"], 2)
        self.assertEqual(legal["urgency"], "due_soon")
        self.assertEqual(legal["dependency_description"], '5 days after "Survey" completes')
        self.assertEqual(len(legal["jobs"]), 2)
        self.assertEqual(body["warnings"], {"dangling": [], "cycles": []})

    def test_timeline_unknown_property(self):
        resp = self.client.get("/api/properties/999/timeline/")
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

    def test_create_task_rejects_other_property_dependency(self):
        other = Property.objects.create(address="3 High St", type="flat")
        resp = self.client.post("/api/tasks/", {
            "property": other.pk, "title": "Valuation", "depends_on_task": self.survey.pk,
        })
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("depends_on_task", resp.json())

    def test_create_task_rejects_negative_relative_days(self):
        resp = self.client.post("/api/tasks/", {
            "property": self.prop.pk, "title": "Skip", "relative_due_days": -1,
        })
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_patch_rejects_self_dependency(self):
        resp = self.client.patch(f"/api/tasks/{self.survey.pk}/", {"depends_on_task": self.survey.pk})
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_patch_rejects_cycle(self):
        resp = self.client.patch(f"/api/tasks/{self.survey.pk}/", {"depends_on_task": self.legal.pk})
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.json()["cycles"], [[self.survey.pk, self.legal.pk, self.survey.pk]])
        self.survey.refresh_from_db()
        self.assertIsNone(self.survey.depends_on_task_id)

    def test_patch_status(self):
        resp = self.client.patch(f"/api/tasks/{self.survey.pk}/", {"status": "completed"})
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.json()["status"], "completed")

    def test_job_defaults_to_task_property(self):
        resp = self.client.post("/api/jobs/", {"task": self.survey.pk, "name": "Book surveyor"})
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertEqual(resp.json()["property"], self.prop.pk)
        resp = self.client.get(f"/api/properties/{self.prop.pk}/jobs/")
        self.assertEqual([j["name"] for j in resp.json()], ["Book surveyor"])

    def test_delete_task_cascades_jobs_and_clears_dependents(self):
        Job.objects.create(task=self.survey, property=self.prop, name="Book surveyor")
        resp = self.client.delete(f"/api/tasks/{self.survey.pk}/")
        self.assertEqual(resp.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Job.objects.exists())
        self.legal.refresh_from_db()
        self.assertIsNone(self.legal.depends_on_task_id)

    def test_property_crud(self):
        resp = self.client.post("/api/properties/", {
            "address": "7 Quay Rd", "type": "2-bed apartment", "purchase_price": "150000.00",
        })
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        pk = resp.json()["id"]
        resp = self.client.patch(f"/api/properties/{pk}/", {"status": "renovation"})
        self.assertEqual(resp.json()["status"], "renovation")
        resp = self.client.get(f"/api/properties/{self.prop.pk}/tasks/")
        self.assertEqual([t["title"] for t in resp.json()], ["Survey", "Legal"])

    def test_moving_task_carries_jobs_and_clears_dependents(self):
        other = Property.objects.create(address="3 High St", type="flat")
        Job.objects.create(task=self.survey, property=self.prop, name="Book surveyor", status="completed")

        resp = self.client.patch(f"/api/tasks/{self.survey.pk}/", {"property": other.pk})
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(list(Job.objects.values_list("property_id", flat=True)), [other.pk])
        self.legal.refresh_from_db()
        self.assertIsNone(self.legal.depends_on_task_id)

        body = self.client.get(f"/api/properties/{other.pk}/timeline/").json()
        moved = body["tasks"][0]
        self.assertEqual(moved["title"], "Survey")
        self.assertEqual(moved["progress"], 100)
        self.assertTrue(moved["fully_completed"])
        self.assertEqual([j["name"] for j in moved["jobs"]], ["Book surveyor"])

        body = self.client.get(f"/api/properties/{self.prop.pk}/timeline/").json()
        self.assertEqual([t["title"] for t in body["tasks"]], ["Legal"])
        self.assertEqual(body["warnings"], {"dangling": [], "cycles": []})

    def test_moving_task_with_old_property_dependency_is_rejected(self):
        other = Property.objects.create(address="3 High St", type="flat")
        resp = self.client.patch(f"/api/tasks/{self.legal.pk}/", {"property": other.pk})
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("depends_on_task", resp.json())
