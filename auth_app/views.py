from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status, permissions
from django.contrib.auth import get_user_model
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken
import logging

from .serializers import LoginSerializer, LogoutSerializer, UserSerializer

User = get_user_model()
logger = logging.getLogger(__name__)


# Логин администратора
class LoginView(APIView):
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        email = serializer.validated_data.get('email')
        username = serializer.validated_data.get('username')
        if email:
            user = User.objects.filter(email=email).first()
        else:
            user = User.objects.filter(username=username).first()

        if user and user.is_active and user.check_password(serializer.validated_data['password']):
            refresh = RefreshToken.for_user(user)
            return Response({
                "access": str(refresh.access_token),
                "refresh": str(refresh),
                "user": UserSerializer(user).data,
            })

        logger.info(f"Неудачная попытка входа: {email or username}")
        return Response({"error": "Неверный логин или пароль"}, status=status.HTTP_400_BAD_REQUEST)


# Профиль
class MeView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        return Response(UserSerializer(request.user).data)


class LogoutView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = LogoutSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            RefreshToken(serializer.validated_data['refresh']).blacklist()
        except TokenError:
            return Response({"message": "Токен неверный"}, status=status.HTTP_400_BAD_REQUEST)

        return Response({'message': "Токен деактивирован"}, status=status.HTTP_200_OK)
