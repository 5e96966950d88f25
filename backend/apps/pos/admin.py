from django.contrib import admin

from apps.pos.models import Product, RecipeIngredient, Sale, SaleLine


class RecipeIngredientInline(admin.TabularInline):
    model = RecipeIngredient
    extra = 0


class SaleLineInline(admin.TabularInline):
    model = SaleLine
    extra = 0
    readonly_fields = ("product", "quantity", "unit_price", "line_total")


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "price", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name", "code")
    inlines = [RecipeIngredientInline]


@admin.register(Sale)
class SaleAdmin(admin.ModelAdmin):
    list_display = ("sold_at", "branch", "staff", "total_amount")
    list_filter = ("branch",)
    inlines = [SaleLineInline]
