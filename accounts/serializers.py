"""
Serializers for session authentication.
"""
from django.contrib.auth import authenticate, get_user_model
from rest_framework import serializers


class LoginSerializer(serializers.Serializer):
    """Validates credentials and exposes the authenticated user as ``user``."""
    username = serializers.CharField(max_length=150)
    password = serializers.CharField(write_only=True, trim_whitespace=False)
    next = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        user = authenticate(
            request=self.context.get('request'),
            username=attrs['username'],
            password=attrs['password']
        )
        if user is None:
            raise serializers.ValidationError("Invalid username or password.")
        attrs['user'] = user
        return attrs


class UserSerializer(serializers.ModelSerializer):
    """Signed-in user as shown to the client."""
    name = serializers.SerializerMethodField()

    class Meta:
        model = get_user_model()
        fields = ['id', 'username', 'name']

    def get_name(self, obj):
        return obj.get_full_name() or obj.username
