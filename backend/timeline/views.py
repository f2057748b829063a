import logging
from typing import Any, Dict, List

from django.db import transaction
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import Job, Property, Task
from .scheduling import build_timeline, detect_circular_dependencies, find_dangling_dependencies
from .serializers import (
    JobSerializer,
    PropertySerializer,
    TaskSerializer,
    TimelineTaskSerializer,
)

logger = logging.getLogger(__name__)

TASK_FIELDS = (
    "id", "property_id", "title", "category", "status", "quotable", "due_date",
    "depends_on_task_id", "relative_due_days", "relative_direction",
)
JOB_FIELDS = ("id", "task_id", "property_id", "name", "type", "status", "due_date")


def property_task_rows(property_id: int) -> List[Dict[str, Any]]:
    """Plain dict rows for every task of a property, in creation order."""
    return list(Task.objects.filter(property_id=property_id).order_by("id").values(*TASK_FIELDS))


def cycle_error(tasks: List[Dict[str, Any]]):
    """A 400 Response listing the dependency cycles among `tasks`, or None when there are none."""
    cycles = detect_circular_dependencies(tasks)
    if not cycles:
        return None
    return Response({"error": "Circular dependencies detected", "cycles": cycles},
                    status=status.HTTP_400_BAD_REQUEST)


class DetailView(APIView):
    """GET / PATCH / DELETE for a single model instance."""

    model = None
    serializer_class = None

    def get_object(self, pk):
        return get_object_or_404(self.model, pk=pk)

    def get(self, request, pk):
        return Response(self.serializer_class(self.get_object(pk)).data)

    def patch(self, request, pk):
        serializer = self.serializer_class(self.get_object(pk), data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)

    def delete(self, request, pk):
        obj = self.get_object(pk)
        logger.info("deleting %s %s", self.model.__name__.lower(), pk)
        obj.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


class ListCreateView(APIView):
    """GET lists every instance, POST creates one."""

    model = None
    serializer_class = None

    def get(self, request):
        return Response(self.serializer_class(self.model.objects.all(), many=True).data)

    def post(self, request):
        serializer = self.serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        obj = serializer.save()
        logger.info("created %s %s", self.model.__name__.lower(), obj.pk)
        return Response(serializer.data, status=status.HTTP_201_CREATED)


class PropertyList(ListCreateView):
    model = Property
    serializer_class = PropertySerializer


class PropertyDetail(DetailView):
    model = Property
    serializer_class = PropertySerializer


class TaskList(ListCreateView):
    model = Task
    serializer_class = TaskSerializer


class TaskDetail(DetailView):
    """
    PATCH /api/tasks/<id>/
    Besides field validation, rejects a dependency change that would close a
    cycle among the property's tasks. Moving a task to another property
    moves its jobs along and clears the dependency of tasks left behind that
    pointed at it.
    """

    model = Task
    serializer_class = TaskSerializer

    def patch(self, request, pk):
        task = self.get_object(pk)
        serializer = self.serializer_class(task, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        prop = serializer.validated_data.get("property", task.property)
        dep = serializer.validated_data.get("depends_on_task", task.depends_on_task)
        rows = [r for r in property_task_rows(prop.pk) if r["id"] != task.pk]
        rows.append({"id": task.pk, "depends_on_task_id": dep.pk if dep is not None else None})

        cycle_resp = cycle_error(rows)
        if cycle_resp:
            logger.warning("rejected dependency change on task %s: %s", pk, cycle_resp.data["cycles"])
            return cycle_resp

        old_property_id = task.property_id
        with transaction.atomic():
            serializer.save()
            if prop.pk != old_property_id:
                moved = Job.objects.filter(task=task).update(property=prop)
                orphaned = Task.objects.filter(depends_on_task=task).exclude(property=prop)
                cleared = orphaned.update(depends_on_task=None)
                logger.info("moved task %s to property %s with %s jobs; cleared %s dependents",
                            pk, prop.pk, moved, cleared)
        return Response(serializer.data)


class JobList(ListCreateView):
    model = Job
    serializer_class = JobSerializer


class JobDetail(DetailView):
    model = Job
    serializer_class = JobSerializer


class PropertyTasks(APIView):
    """GET /api/properties/<id>/tasks/"""

    def get(self, request, pk):
        prop = get_object_or_404(Property, pk=pk)
        return Response(TaskSerializer(prop.tasks.all(), many=True).data)


class PropertyJobs(APIView):
    """GET /api/properties/<id>/jobs/"""

    def get(self, request, pk):
        prop = get_object_or_404(Property, pk=pk)
        return Response(JobSerializer(prop.jobs.all(), many=True).data)


class PropertyTimeline(APIView):
    """
    GET /api/properties/<id>/timeline/
    Returns the property's tasks in dependency order, each annotated with job
    progress, days until due, urgency and a dependency description, plus
    warnings for dangling and circular dependency references.
    """

    def get(self, request, pk):
        prop = get_object_or_404(Property, pk=pk)
        tasks = property_task_rows(prop.pk)
        jobs = list(Job.objects.filter(task__property_id=prop.pk).order_by("id").values(*JOB_FIELDS))

        timeline = build_timeline(tasks, jobs, now=timezone.localdate(),
                                  tz=timezone.get_current_timezone())
        warnings = {
            "dangling": find_dangling_dependencies(tasks),
            "cycles": detect_circular_dependencies(tasks),
        }
        if warnings["dangling"] or warnings["cycles"]:
            logger.warning("property %s timeline has dependency anomalies: %s", prop.pk, warnings)

        return Response({
            "property": prop.pk,
            "tasks": TimelineTaskSerializer(timeline, many=True).data,
            "warnings": warnings,
        }, status=status.HTTP_200_OK)
