"""
Listing support shared by the catalog, purchase and sale list endpoints.

Query parameters:
    - q: Case-insensitive substring matched against the view's search_fields
    - from / to: Inclusive YYYY-MM-DD bounds on the view's date_lookup
    - sort / dir: A key of the view's sort_fields and asc|desc
    - page / page_size (alias pageSize): 1-based page and clamped page size

Malformed values never raise; they fall back to the view's defaults.
"""
import math
from datetime import date, datetime
from typing import Optional

from django.db.models import Q
from rest_framework.filters import BaseFilterBackend
from rest_framework.pagination import BasePagination
from rest_framework.response import Response

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50


def parse_int(value, default: int) -> int:
    """Parse an integer query value, returning ``default`` when malformed."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_date(value) -> Optional[date]:
    """Parse a YYYY-MM-DD query value, returning None when malformed."""
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), '%Y-%m-%d').date()
    except ValueError:
        return None


def page_count(total: int, page_size: int) -> int:
    return max(1, math.ceil(total / page_size))


class QuerySearchFilter(BaseFilterBackend):
    """Match ``q`` against every field in ``view.search_fields`` (OR)."""

    def filter_queryset(self, request, queryset, view):
        term = request.query_params.get('q', '').strip()
        search_fields = getattr(view, 'search_fields', ())
        if not term or not search_fields:
            return queryset

        query = Q()
        for field in search_fields:
            query |= Q(**{f'{field}__icontains': term})
        return queryset.filter(query)


class DateRangeFilter(BaseFilterBackend):
    """
    Restrict to ``from <= view.date_lookup <= to``.

    ``date_lookup`` names a date expression, e.g. ``date`` for a DateField or
    ``created_at__date`` for a DateTimeField, so the upper bound always
    covers the whole day.
    """

    def filter_queryset(self, request, queryset, view):
        date_lookup = getattr(view, 'date_lookup', None)
        if not date_lookup:
            return queryset

        date_from = parse_date(request.query_params.get('from'))
        if date_from:
            queryset = queryset.filter(**{f'{date_lookup}__gte': date_from})

        date_to = parse_date(request.query_params.get('to'))
        if date_to:
            queryset = queryset.filter(**{f'{date_lookup}__lte': date_to})

        return queryset


class SortFilter(BaseFilterBackend):
    """
    Order by ``view.sort_fields[sort]`` in direction ``dir``.

    Unknown keys fall back to ``view.default_sort`` and ``view.default_dir``.
    The primary key is appended as a tie-breaker so pages are stable.
    """

    def filter_queryset(self, request, queryset, view):
        sort_fields = getattr(view, 'sort_fields', None)
        if not sort_fields:
            return queryset

        sort_key = request.query_params.get('sort', '')
        if sort_key not in sort_fields:
            sort_key = view.default_sort

        direction = request.query_params.get('dir', '').lower()
        if direction not in ('asc', 'desc'):
            direction = getattr(view, 'default_dir', 'desc')

        prefix = '-' if direction == 'desc' else ''
        return queryset.order_by(f'{prefix}{sort_fields[sort_key]}', f'{prefix}pk')


CATALOG_FILTER_BACKENDS = [QuerySearchFilter, DateRangeFilter, SortFilter]


class CatalogPagination(BasePagination):
    """
    Page-number pagination returning ``{data, total, page, page_size, total_pages}``.

    Views may override ``default_page_size`` and ``max_page_size``. A page
    beyond the last one yields an empty ``data`` list instead of a 404.
    """
    page_query_param = 'page'
    page_size_query_params = ('page_size', 'pageSize')

    def get_page_size(self, request, view=None):
        default = getattr(view, 'default_page_size', DEFAULT_PAGE_SIZE)
        maximum = getattr(view, 'max_page_size', MAX_PAGE_SIZE)

        raw = None
        for param in self.page_size_query_params:
            if param in request.query_params:
                raw = request.query_params[param]
                break

        return min(maximum, max(1, parse_int(raw, default)))

    def paginate_queryset(self, queryset, request, view=None):
        self.page_size = self.get_page_size(request, view)
        self.page = max(1, parse_int(request.query_params.get(self.page_query_param), 1))
        self.total = queryset.count()

        offset = (self.page - 1) * self.page_size
        return list(queryset[offset:offset + self.page_size])

    def get_paginated_response(self, data):
        return Response({
            'data': data,
            'total': self.total,
            'page': self.page,
            'page_size': self.page_size,
            'total_pages': page_count(self.total, self.page_size),
        })
