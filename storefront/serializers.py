from rest_framework import serializers

from .config import get_config
from .errors import IllegalTransition
from .models import CustomRequest, Order
from .services.ledger import apply_staff_update, check_staff_move


class OrderSerializer(serializers.ModelSerializer):
    item_title = serializers.CharField(read_only=True)
    kind = serializers.SerializerMethodField()
    formatted_amount = serializers.CharField(read_only=True)
    purchased_template_ids = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id',
            'public_id',
            'purchaser',
            'kind',
            'template',
            'bundle',
            'item_title',
            'purchased_template_ids',
            'amount',
            'currency',
            'formatted_amount',
            'status',
            'payment_status',
            'stripe_session_id',
            'notes',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_kind(self, obj):
        return "bundle" if obj.is_bundle else "template"

    def get_purchased_template_ids(self, obj):
        return sorted(obj.purchased_template_ids())

    def to_representation(self, instance):
        data = super().to_representation(instance)
        request = self.context.get("request")
        # notes are internal
        if not (request and request.user.is_staff):
            data.pop("notes", None)
        return data


class OrderStaffUpdateSerializer(serializers.Serializer):
    """
    Staff-only partial update. Everything outside ALLOWED_FIELDS is rejected, not ignored.
    status / payment_status are checked as a pair; payment moves run through the ledger.
    """

    ALLOWED_FIELDS = ("notes", "status", "payment_status")

    notes = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES, required=False)
    payment_status = serializers.ChoiceField(choices=Order.PAYMENT_STATUS_CHOICES, required=False)

    def validate(self, attrs):
        extra = sorted(set(self.initial_data) - set(self.ALLOWED_FIELDS))
        if extra:
            raise serializers.ValidationError(
                {name: "This field cannot be changed." for name in extra}
            )
        if not attrs:
            raise serializers.ValidationError("Nothing to update.")

        try:
            check_staff_move(
                self.instance,
                status=attrs.get("status"),
                payment_status=attrs.get("payment_status"),
            )
        except IllegalTransition as e:
            raise serializers.ValidationError({e.field: e.message})
        return attrs

    def update(self, instance, validated_data):
        return apply_staff_update(
            instance,
            status=validated_data.get("status"),
            payment_status=validated_data.get("payment_status"),
            notes=validated_data.get("notes"),
            config=get_config(),
            source=self.context.get("source", "staff"),
        )


class CustomRequestSerializer(serializers.ModelSerializer):
    class Meta:
        model = CustomRequest
        fields = [
            'id',
            'name',
            'email',
            'template_description',
            'created_at',
        ]
        read_only_fields = ['id', 'created_at']
