from rest_framework import serializers

from .models import Job, Property, Task


class PropertySerializer(serializers.ModelSerializer):
    class Meta:
        model = Property
        fields = [
            "id", "address", "city", "postcode", "type",
            "purchase_price", "renovation_budget", "status", "notes",
        ]


class TaskSerializer(serializers.ModelSerializer):
    relative_due_days = serializers.IntegerField(min_value=0, required=False, allow_null=True)

    class Meta:
        model = Task
        fields = [
            "id", "property", "title", "description", "category", "status", "quotable",
            "due_date", "depends_on_task", "relative_due_days", "relative_direction",
            "created_at",
        ]
        read_only_fields = ["created_at"]

    def validate(self, attrs):
        instance = self.instance
        prop = attrs.get("property", getattr(instance, "property", None))
        if "depends_on_task" in attrs:
            dep = attrs["depends_on_task"]
        else:
            dep = getattr(instance, "depends_on_task", None)

        if dep is not None:
            if instance is not None and dep.pk == instance.pk:
                raise serializers.ValidationError({"depends_on_task": "A task cannot depend on itself."})
            if prop is not None and dep.property_id != prop.pk:
                raise serializers.ValidationError(
                    {"depends_on_task": "Dependency must belong to the same property."}
                )
        return attrs


class JobSerializer(serializers.ModelSerializer):
    # Defaults to the owning task's property when omitted
    property = serializers.PrimaryKeyRelatedField(queryset=Property.objects.all(), required=False)

    class Meta:
        model = Job
        fields = [
            "id", "task", "property", "name", "description", "type", "status",
            "due_date", "notes", "created_at",
        ]
        read_only_fields = ["created_at"]

    def validate(self, attrs):
        task = attrs.get("task", getattr(self.instance, "task", None))
        prop = attrs.get("property")
        if prop is None:
            attrs["property"] = task.property
        elif prop.pk != task.property_id:
            raise serializers.ValidationError({"property": "Job must belong to its task's property."})
        return attrs


class TimelineJobSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    task_id = serializers.IntegerField()
    name = serializers.CharField()
    type = serializers.CharField()
    status = serializers.CharField()
    due_date = serializers.DateTimeField(allow_null=True)
    days_until_due = serializers.IntegerField(allow_null=True)
    urgency = serializers.CharField(allow_null=True)


class TimelineTaskSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    property_id = serializers.IntegerField()
    title = serializers.CharField()
    category = serializers.CharField()
    status = serializers.CharField()
    quotable = serializers.BooleanField()
    due_date = serializers.DateTimeField(allow_null=True)
    depends_on_task_id = serializers.IntegerField(allow_null=True)
    relative_due_days = serializers.IntegerField(allow_null=True)
    relative_direction = serializers.CharField(allow_null=True)
    progress = serializers.IntegerField()
    fully_completed = serializers.BooleanField()
    days_until_due = serializers.IntegerField(allow_null=True)
    urgency = serializers.CharField(allow_null=True)
    dependency_description = serializers.CharField(allow_null=True)
    jobs = TimelineJobSerializer(many=True)
