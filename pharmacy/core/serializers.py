import re

from rest_framework import serializers
from django.contrib.auth.password_validation import validate_password
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.exceptions import AuthenticationFailed
from .models import User, Setting, AuditLog

PHONE_PATTERN = re.compile(r'^[0-9+\-()\s]{8,15}$')
MIN_PASSWORD_LENGTH = 6


def validate_phone_number(value):
    """Shared phone validation for users and suppliers"""
    if value and not PHONE_PATTERN.match(value):
        raise serializers.ValidationError('Phone number must be 8-15 characters of digits, spaces, +, -, ( or )')
    return value


class UserSerializer(serializers.ModelSerializer):
    is_admin = serializers.BooleanField(read_only=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'full_name', 'role', 'email', 'phone', 'is_active',
                  'is_admin', 'last_login', 'created_at', 'updated_at']
        read_only_fields = ['last_login', 'created_at', 'updated_at']

    def validate_username(self, value):
        value = value.strip()
        queryset = User.objects.filter(username__iexact=value)
        if self.instance:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('A user with this username already exists')
        return value

    def validate_full_name(self, value):
        value = (value or '').strip()
        if not value:
            raise serializers.ValidationError('Full name is required')
        return value

    def validate_email(self, value):
        if not value:
            return ''
        queryset = User.objects.filter(email__iexact=value)
        if self.instance:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('A user with this email already exists')
        return value

    def validate_phone(self, value):
        return validate_phone_number(value)


class UserCreateSerializer(UserSerializer):
    password = serializers.CharField(write_only=True, min_length=MIN_PASSWORD_LENGTH, validators=[validate_password])
    password_confirm = serializers.CharField(write_only=True)
    full_name = serializers.CharField(max_length=200)
    role = serializers.ChoiceField(choices=User.ROLE_CHOICES)

    class Meta(UserSerializer.Meta):
        fields = ['id', 'username', 'full_name', 'role', 'email', 'phone', 'is_active',
                  'password', 'password_confirm']

    def validate(self, attrs):
        if attrs['password'] != attrs['password_confirm']:
            raise serializers.ValidationError({"password_confirm": "Passwords don't match"})
        return attrs

    def create(self, validated_data):
        validated_data.pop('password_confirm')
        password = validated_data.pop('password')
        validated_data.setdefault('is_active', True)
        user = User(**validated_data)
        user.set_password(password)
        user.save()
        return user


class PasswordChangeSerializer(serializers.Serializer):
    new_password = serializers.CharField(write_only=True, min_length=MIN_PASSWORD_LENGTH)
    confirm_password = serializers.CharField(write_only=True)

    def validate(self, attrs):
        if attrs['new_password'] != attrs['confirm_password']:
            raise serializers.ValidationError({"confirm_password": "Passwords don't match"})
        return attrs


class PharmacyTokenObtainPairSerializer(TokenObtainPairSerializer):
    """Issues tokens carrying the user's role; an optional role in the request must match it"""
    role = serializers.ChoiceField(choices=User.ROLE_CHOICES, required=False, write_only=True)

    def validate(self, attrs):
        requested_role = attrs.pop('role', None)
        data = super().validate(attrs)
        if not self.user.is_active:
            raise AuthenticationFailed('User account is disabled.')
        if requested_role and requested_role != self.user.role:
            raise AuthenticationFailed('This account does not have the selected role.')
        data['user'] = UserSerializer(self.user).data
        data['redirect_to'] = self.user.landing_path
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['role'] = user.role
        return token


class SettingSerializer(serializers.ModelSerializer):
    class Meta:
        model = Setting
        fields = ['id', 'key', 'value', 'description', 'updated_at']


class AuditLogSerializer(serializers.ModelSerializer):
    user = UserSerializer(read_only=True)

    class Meta:
        model = AuditLog
        fields = ['id', 'user', 'action', 'model_name', 'object_id', 'object_name',
                  'object_reference', 'changes', 'ip_address', 'created_at']
