# apps/wallets/views.py
import logging

from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django_filters import rest_framework as filters

from core.exceptions import NotFound
from core.pagination import StandardPagination
from core.permissions import IsDoctor, IsAdmin
from .models import Transaction
from .serializers import (
    WalletSummarySerializer, TransactionSerializer,
    WithdrawalRequestSerializer, WithdrawalProcessSerializer
)
from .services import WalletService

logger = logging.getLogger(__name__)


class TransactionFilter(filters.FilterSet):
    type = filters.CharFilter(field_name='type')
    status = filters.CharFilter(field_name='status')
    date_from = filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = filters.DateFilter(field_name='created_at', lookup_expr='date__lte')

    class Meta:
        model = Transaction
        fields = ['type', 'status']


# ============================
# Wallet ViewSet
# ============================

class WalletViewSet(viewsets.GenericViewSet):
    """
    Doctor wallet: balance, ledger and withdrawals.
    """
    queryset = Transaction.objects.all()
    serializer_class = TransactionSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = StandardPagination

    def get_permissions(self):
        if self.action in ['me', 'withdrawals']:
            return [IsAuthenticated(), IsDoctor()]
        if self.action == 'process_withdrawal':
            return [IsAuthenticated(), IsAdmin()]
        return [IsAuthenticated()]

    def _doctor(self):
        doctor = getattr(self.request.user, 'doctor_profile', None)
        if doctor is None:
            raise NotFound("Doctor profile not found")
        return doctor

    @action(detail=False, methods=['get'])
    def me(self, request):
        summary = WalletService.summary(self._doctor())
        return Response(WalletSummarySerializer(summary).data)

    @action(detail=False, methods=['get'])
    def transactions(self, request):
        queryset = Transaction.objects.filter(user=request.user)
        queryset = TransactionFilter(request.query_params, queryset=queryset).qs

        page = self.paginate_queryset(queryset)
        if page is not None:
            serializer = TransactionSerializer(page, many=True)
            return self.get_paginated_response(serializer.data)
        return Response(TransactionSerializer(queryset, many=True).data)

    @action(detail=False, methods=['post'])
    def withdrawals(self, request):
        serializer = WithdrawalRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        txn = WalletService.request_withdrawal(
            self._doctor(),
            serializer.validated_data['amount'],
            serializer.validated_data['description'],
        )
        return Response(TransactionSerializer(txn).data, status=status.HTTP_201_CREATED)

    @action(
        detail=False,
        methods=['post'],
        url_path=r'withdrawals/(?P<txn_id>[^/.]+)/process'
    )
    def process_withdrawal(self, request, txn_id=None):
        serializer = WithdrawalProcessSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        txn = Transaction.objects.select_related('user__doctor_profile').filter(transaction_id=txn_id).first()
        doctor = getattr(txn.user, 'doctor_profile', None) if txn else None
        if doctor is None:
            raise NotFound(f"Withdrawal request {txn_id} not found")

        result = WalletService.process_withdrawal(
            doctor, txn_id, serializer.validated_data['admin_notes']
        )
        logger.info(f"Withdrawal {txn_id} processed by {request.user.email}")
        return Response({
            'withdrawal': TransactionSerializer(result['withdrawal']).data,
            'processed': TransactionSerializer(result['processed']).data,
        })
