from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from .models import MembershipTier
from .serializers import MembershipTierSerializer, UserMembershipSerializer, SubscribeSerializer
from . import services


@api_view(['GET'])
@permission_classes([AllowAny])
def tier_list(request):
    """Public list of the tiers on offer"""
    tiers = MembershipTier.objects.filter(is_active=True)
    serializer = MembershipTierSerializer(tiers, many=True)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_membership(request):
    """Current membership; users without one are on the free tier"""
    membership = services.get_active_membership(request.user)
    tier = services.get_user_tier(request.user)
    return Response({
        'membership': UserMembershipSerializer(membership).data if membership else None,
        'tier': MembershipTierSerializer(tier).data,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_limits(request):
    return Response(services.get_user_limits(request.user))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def subscribe(request):
    serializer = SubscribeSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    membership = services.subscribe(
        request.user,
        serializer.validated_data['tier_type'],
        serializer.validated_data['billing_period'],
        request=request,
    )
    return Response({
        'membership': UserMembershipSerializer(membership).data if membership else None,
        'limits': services.get_user_limits(request.user),
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cancel(request):
    membership = services.cancel_membership(request.user, request=request)
    return Response(UserMembershipSerializer(membership).data)
