"""
DRF serializers for the demo's forms and state documents.

This module provides serializers for:
- Login and cashout form input
- PaymentRecord display

Related files:
    - types.py: PaymentRecord
    - views.py: index view

Usage:
    form = CashoutSerializer(data=request.POST)
    form.is_valid()
    PaymentService.request_cashout(store, **form.validated_data)
"""

from __future__ import annotations

from rest_framework import serializers

from payments.state_machines import PaymentStatus


class LoginSerializer(serializers.Serializer):
    """
    Login form.

    Fields:
        pi_username: Pi username (blank is rejected by AuthService)
        pi_uid: Pi UID (optional; generated when blank)
        access_token: Pi SDK access token (optional)
    """

    pi_username = serializers.CharField(required=False, allow_blank=True, default="", trim_whitespace=True)
    pi_uid = serializers.CharField(required=False, allow_blank=True, default="", trim_whitespace=True)
    access_token = serializers.CharField(required=False, allow_blank=True, default="")


class CashoutSerializer(serializers.Serializer):
    """
    Cashout form.

    The amount is taken as text; PaymentService parses it and anything
    non-numeric becomes an out-of-range amount.
    """

    amount = serializers.CharField(required=False, allow_blank=True, default="")
    memo = serializers.CharField(
        required=False,
        allow_blank=True,
        default="",
        trim_whitespace=True,
    )


class PaymentRecordSerializer(serializers.Serializer):
    """
    PaymentRecord serializer for state documents.

    Fields:
        payment_id: Provider payment identifier
        amount: Exact amount as a string
        status: pending, approved, completed or failed
        memo: Payment memo
        user_id: Payee UID
        created_at: POSIX timestamp
        txid: Transaction id, once completed
        testnet: Testnet flag

    Usage:
        PaymentRecordSerializer(store.get_last_payment()).data
    """

    payment_id = serializers.CharField(read_only=True)
    amount = serializers.CharField(read_only=True)
    status = serializers.ChoiceField(choices=PaymentStatus.choices, read_only=True)
    memo = serializers.CharField(read_only=True)
    user_id = serializers.CharField(read_only=True)
    created_at = serializers.FloatField(read_only=True)
    txid = serializers.CharField(read_only=True, allow_null=True)
    testnet = serializers.BooleanField(read_only=True)
