"""Serializers for depots and operator profiles."""
from rest_framework import serializers
from .models import Depot, User


class DepotSerializer(serializers.ModelSerializer):
    class Meta:
        model = Depot
        fields = ['id', 'name', 'location', 'city', 'contact_number']
        read_only_fields = fields


class UserSerializer(serializers.ModelSerializer):
    depot = DepotSerializer(read_only=True)

    class Meta:
        model = User
        fields = ['id', 'email', 'name', 'depot', 'is_admin', 'created_at']
        read_only_fields = fields
