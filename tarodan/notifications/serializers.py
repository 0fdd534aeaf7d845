from rest_framework import serializers
from .models import NotificationLog


class NotificationSerializer(serializers.ModelSerializer):
    icon = serializers.SerializerMethodField()
    link = serializers.SerializerMethodField()

    class Meta:
        model = NotificationLog
        fields = ['id', 'type', 'title', 'body', 'data', 'icon', 'link', 'is_read', 'read_at', 'created_at']

    def get_icon(self, obj):
        return (obj.data or {}).get('icon')

    def get_link(self, obj):
        return (obj.data or {}).get('link')


class PushTokenSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=255, allow_blank=True)

    def validate_token(self, value):
        if value and not value.startswith('ExponentPushToken'):
            raise serializers.ValidationError('Only Expo push tokens are supported.')
        return value
