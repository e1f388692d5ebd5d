"""Views for the authenticated operator."""
from rest_framework.views import APIView
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema

from .serializers import UserSerializer


class UserProfileView(APIView):
    @extend_schema(
        summary="Get current user profile",
        description="Returns the authenticated user together with the depot they operate",
        responses={200: UserSerializer},
        tags=["Authentication"]
    )
    def get(self, request):
        return Response(UserSerializer(request.user).data)
