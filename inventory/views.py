"""
Inventory API Views.

Implements:
- GET /inventory/analysis/ - Reconciliation report with canonical thresholds
- GET /inventory/unified-analysis/ - Same report with the unified thresholds
- GET /inventory/unified-sales/ - Normalized sold items from every source
- GET /inventory/ - Catalog with manual sales and return totals
- POST /inventory/restock/ - Add stock to a product (purchase admins)
- GET /inventory/alerts/ - Low stock buckets by catalog quantity
- GET /inventory/alerts/pdf/ - Low stock PDF report
- GET /inventory/connection/ - Document store connectivity check
- /products/ and /sold-products/ - Catalog and manual sale maintenance
"""
import logging

from django.http import HttpResponse
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import error_envelope
from core.permissions import IsPurchaseAdmin
from core.rate_limiting import RateLimitMixin, rate_limit
from documents.store import DocumentStoreError
from .conf import inventory_setting
from .records import Thresholds
from .reports import REPORT_FILENAME, build_low_stock_pdf
from .serializers import (
    BulkProductsSerializer,
    LowStockQuerySerializer,
    ProductUpdateSerializer,
    RestockSerializer,
    SoldProductSerializer,
    ThresholdQuerySerializer,
)
from .services import (
    CatalogUnavailableError,
    ProductNotFoundError,
    ProductValidationError,
    analyze_inventory,
    check_connection,
    create_products,
    delete_product,
    get_inventory_with_sales,
    get_low_stock_levels,
    get_product,
    get_unified_sales,
    list_products,
    list_sold_products,
    low_stock_products,
    record_sold_product,
    restock_product,
    update_product,
    update_sold_product,
)

logger = logging.getLogger(__name__)


def success(data, status_code=status.HTTP_200_OK, **extra):
    return Response({'success': True, **extra, 'data': data}, status=status_code)


class InventoryAPIView(APIView):
    """
    Base view translating service errors into the error envelope.

    - CatalogUnavailableError / DocumentStoreError: 500
    - ProductNotFoundError: 404
    - ProductValidationError: 400
    """
    failure_message = 'Inventory request failed'

    def handle_exception(self, exc):
        if isinstance(exc, ProductNotFoundError):
            return Response(error_envelope('Not found', str(exc)), status=status.HTTP_404_NOT_FOUND)
        if isinstance(exc, ProductValidationError):
            logger.warning(f"Product validation failed: {exc}")
            return Response(
                error_envelope('Validation failed', str(exc), 'VALIDATION_ERROR'),
                status=status.HTTP_400_BAD_REQUEST,
            )
        if isinstance(exc, (CatalogUnavailableError, DocumentStoreError)):
            logger.error(f"{self.__class__.__name__}: {exc}")
            return Response(
                error_envelope(self.failure_message, str(exc)),
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        return super().handle_exception(exc)


class InventoryAnalysisView(RateLimitMixin, InventoryAPIView):
    """
    GET: Reconcile the catalog against every sales source.

    Query Parameters:
        - low: LOW_STOCK threshold (optional)
        - medium: MEDIUM_STOCK threshold (optional)
    """
    threshold_setting = 'THRESHOLDS'
    failure_message = 'Failed to analyze inventory'
    rate_limit_max_requests = 30
    rate_limit_window_seconds = 60

    def get(self, request):
        defaults = Thresholds.from_config(inventory_setting(self.threshold_setting))
        query = ThresholdQuerySerializer(data=request.query_params, context={'defaults': defaults})
        query.is_valid(raise_exception=True)

        analysis = analyze_inventory(thresholds=query.validated_data['thresholds'])
        return success(analysis.to_dict())


class UnifiedInventoryAnalysisView(InventoryAnalysisView):
    """GET: Reconciliation report using the unified thresholds by default."""
    threshold_setting = 'UNIFIED_THRESHOLDS'


class UnifiedSalesView(RateLimitMixin, InventoryAPIView):
    failure_message = 'Failed to load sales'

    def get(self, request):
        return success(get_unified_sales())


class InventoryWithSalesView(InventoryAPIView):
    """GET: Catalog records with manual sales and return totals."""
    failure_message = 'Failed to fetch inventory'

    def get(self, request):
        return success(get_inventory_with_sales())


class RestockView(InventoryAPIView):
    permission_classes = [IsAuthenticated, IsPurchaseAdmin]
    failure_message = 'Failed to restock'

    def post(self, request):
        serializer = RestockSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        product = restock_product(
            item_code=data['itemCode'],
            quantity=data['quantity'],
            item_name=data.get('itemName', ''),
            unit_price=data.get('unitPrice'),
            gst=data.get('gst'),
        )
        return success(product, message='Inventory updated')


class LowStockAlertsView(InventoryAPIView):
    """
    GET: Catalog products bucketed into levelOne, levelTwo and noStock.

    Query Parameters:
        - threshold: upper bound for levelOne (default 5)
    """
    failure_message = 'Failed to fetch low stock alerts'

    def get(self, request):
        query = LowStockQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        return success(get_low_stock_levels(query.validated_data['threshold']))


class LowStockPdfView(InventoryAPIView):
    failure_message = 'Failed to generate PDF'

    @rate_limit(10, 60)
    def get(self, request):
        threshold = inventory_setting('LOW_STOCK_PDF_THRESHOLD')
        pdf = build_low_stock_pdf(low_stock_products(threshold), threshold)

        response = HttpResponse(pdf, content_type='application/pdf')
        response['Content-Disposition'] = f'attachment; filename={REPORT_FILENAME}'
        return response


class ConnectionCheckView(InventoryAPIView):
    failure_message = 'Inventory connection test failed'

    def get(self, request):
        return success(check_connection(), message='Inventory connection test successful')


class ProductListView(InventoryAPIView):
    failure_message = 'Failed to fetch products'

    def get(self, request):
        return success(list_products())


class ProductBulkCreateView(InventoryAPIView):
    """
    POST: Create many products at once (purchase admins).

    Request Body:
    {
        "products": [{"itemCode": "P1", "itemName": "Fridge", "unitPrice": 15000}]
    }
    """
    permission_classes = [IsAuthenticated, IsPurchaseAdmin]
    failure_message = 'Failed to create products'

    def post(self, request):
        serializer = BulkProductsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        created = create_products(serializer.validated_data['products'], created_by=request.user.uid)
        return success(
            created,
            status.HTTP_201_CREATED,
            message=f'{len(created)} products created successfully',
        )


class ProductDetailView(InventoryAPIView):
    """
    GET: Product detail
    PUT: Update product fields (purchase admins)
    DELETE: Remove product (purchase admins)
    """
    failure_message = 'Product request failed'

    def get_permissions(self):
        if self.request.method in ('PUT', 'PATCH', 'DELETE'):
            return [IsAuthenticated(), IsPurchaseAdmin()]
        return super().get_permissions()

    def get(self, request, pk):
        return success(get_product(pk))

    def put(self, request, pk):
        serializer = ProductUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        return success(update_product(pk, serializer.validated_data))

    def delete(self, request, pk):
        delete_product(pk)
        return success(None, message='Product deleted')


class SoldProductListCreateView(InventoryAPIView):
    """
    GET: Manual sold entries, newest first, with totalAmount and gstAmount
    POST: Record a manual sale
    """
    failure_message = 'Failed to process sold products'

    def get(self, request):
        return success(list_sold_products())

    def post(self, request):
        serializer = SoldProductSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        sold = record_sold_product(serializer.validated_data, created_by=request.user.uid)
        return success(sold, status.HTTP_201_CREATED)


class SoldProductDetailView(InventoryAPIView):
    failure_message = 'Failed to update sold item'

    def put(self, request, pk):
        serializer = SoldProductSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        if not serializer.validated_data:
            raise ProductValidationError("No fields to update")
        return success(update_sold_product(pk, serializer.validated_data))
