"""External table catalog for the TPC-DS lab database.

Kept as data: the DDL text is produced by `schema_service.render_table_ddl`.
The raw TPC-DS tables point at the public `redshift-downloads` bucket; the
`prepared_*` tables live in the account bucket and therefore reference the
`$accountID` placeholder.
"""

from __future__ import annotations

from warehouse_setup.models.tables import (
    PARQUET,
    TEXT_DELIMITED_PIPE,
    ColumnDefinition,
    TableDefinition,
)

ACCOUNT_ID_PLACEHOLDER = "$accountID"

_TPCDS_PUBLIC_ROOT = "s3://redshift-downloads/TPC-DS/100GB"
_PREPARED_ROOT = f"s3://otfs-aula-{ACCOUNT_ID_PLACEHOLDER}/datasets/TPC-DS-100-GB"

_CSV_PROPERTIES = {"classification": "csv"}
_PARQUET_PROPERTIES = {
    "auto.purge": "false",
    "has_encrypted_data": "false",
    "parquet.compression": "GZIP",
    "transactional": "false",
}


def _columns(*pairs: tuple[str, str]) -> tuple[ColumnDefinition, ...]:
    return tuple(ColumnDefinition(name=name, type=type_) for name, type_ in pairs)


CUSTOMER = TableDefinition(
    name="customer",
    columns=_columns(
        ("c_customer_sk", "int"),
        ("c_customer_id", "string"),
        ("c_current_cdemo_sk", "int"),
        ("c_current_hdemo_sk", "int"),
        ("c_current_addr_sk", "int"),
        ("c_first_shipto_date_sk", "int"),
        ("c_first_sales_date_sk", "int"),
        ("c_salutation", "string"),
        ("c_first_name", "string"),
        ("c_last_name", "string"),
        ("c_preferred_cust_flag", "string"),
        ("c_birth_day", "int"),
        ("c_birth_month", "int"),
        ("c_birth_year", "int"),
        ("c_birth_country", "string"),
        ("c_login", "string"),
        ("c_email_address", "string"),
        ("c_last_review_date_sk", "int"),
    ),
    format=TEXT_DELIMITED_PIPE,
    location=f"{_TPCDS_PUBLIC_ROOT}/customer",
    properties=_CSV_PROPERTIES,
)

DATE_DIM = TableDefinition(
    name="date_dim",
    columns=_columns(
        ("d_date_sk", "int"),
        ("d_date_id", "string"),
        ("d_date", "string"),
        ("d_month_seq", "int"),
        ("d_week_seq", "int"),
        ("d_quarter_seq", "int"),
        ("d_year", "int"),
        ("d_dow", "int"),
        ("d_moy", "int"),
        ("d_dom", "int"),
        ("d_qoy", "int"),
        ("d_fy_year", "int"),
        ("d_fy_quarter_seq", "int"),
        ("d_fy_week_seq", "int"),
        ("d_day_name", "string"),
        ("d_quarter_name", "string"),
        ("d_holiday", "string"),
        ("d_weekend", "string"),
        ("d_following_holiday", "string"),
        ("d_first_dom", "int"),
        ("d_last_dom", "int"),
        ("d_same_day_ly", "int"),
        ("d_same_day_lq", "int"),
        ("d_current_day", "string"),
        ("d_current_week", "string"),
        ("d_current_month", "string"),
        ("d_current_quarter", "string"),
        ("d_current_year", "string"),
    ),
    format=TEXT_DELIMITED_PIPE,
    location=f"{_TPCDS_PUBLIC_ROOT}/date_dim",
    properties=_CSV_PROPERTIES,
)

PREPARED_CUSTOMER = TableDefinition(
    name="prepared_customer",
    columns=_columns(
        ("c_customer_sk", "int"),
        ("c_customer_id", "string"),
        ("c_first_name", "string"),
        ("c_last_name", "string"),
        ("c_email_address", "string"),
    ),
    format=PARQUET,
    location=f"{_PREPARED_ROOT}/prepared_customer",
    properties=_PARQUET_PROPERTIES,
)

PREPARED_WEB_SALES = TableDefinition(
    name="prepared_web_sales",
    columns=_columns(
        ("ws_order_number", "int"),
        ("ws_item_sk", "int"),
        ("ws_quantity", "int"),
        ("ws_sales_price", "double"),
        ("ws_warehouse_sk", "int"),
        ("ws_sales_time", "timestamp"),
    ),
    format=PARQUET,
    location=f"{_PREPARED_ROOT}/prepared_web_sales",
    properties=_PARQUET_PROPERTIES,
)

TIME_DIM = TableDefinition(
    name="time_dim",
    columns=_columns(
        ("t_time_sk", "int"),
        ("t_time_id", "string"),
        ("t_time", "int"),
        ("t_hour", "int"),
        ("t_minute", "int"),
        ("t_second", "int"),
        ("t_am_pm", "string"),
        ("t_shift", "string"),
        ("t_sub_shift", "string"),
        ("t_meal_time", "string"),
    ),
    format=TEXT_DELIMITED_PIPE,
    location=f"{_TPCDS_PUBLIC_ROOT}/time_dim",
    properties=_CSV_PROPERTIES,
)

WEB_SALES = TableDefinition(
    name="web_sales",
    columns=_columns(
        ("ws_sold_date_sk", "int"),
        ("ws_sold_time_sk", "int"),
        ("ws_ship_date_sk", "int"),
        ("ws_item_sk", "int"),
        ("ws_bill_customer_sk", "int"),
        ("ws_bill_cdemo_sk", "int"),
        ("ws_bill_hdemo_sk", "int"),
        ("ws_bill_addr_sk", "int"),
        ("ws_ship_customer_sk", "int"),
        ("ws_ship_cdemo_sk", "int"),
        ("ws_ship_hdemo_sk", "int"),
        ("ws_ship_addr_sk", "int"),
        ("ws_web_page_sk", "int"),
        ("ws_web_site_sk", "int"),
        ("ws_ship_mode_sk", "int"),
        ("ws_warehouse_sk", "int"),
        ("ws_promo_sk", "int"),
        ("ws_order_number", "int"),
        ("ws_quantity", "int"),
        ("ws_wholesale_cost", "double"),
        ("ws_list_price", "double"),
        ("ws_sales_price", "double"),
        ("ws_ext_discount_amt", "double"),
        ("ws_ext_sales_price", "double"),
        ("ws_ext_wholesale_cost", "double"),
        ("ws_ext_list_price", "double"),
        ("ws_ext_tax", "double"),
        ("ws_coupon_amt", "double"),
        ("ws_ext_ship_cost", "double"),
        ("ws_net_paid", "double"),
        ("ws_net_paid_inc_tax", "double"),
        ("ws_net_paid_inc_ship", "double"),
        ("ws_net_paid_inc_ship_tax", "double"),
        ("ws_net_profit", "double"),
    ),
    format=TEXT_DELIMITED_PIPE,
    location=f"{_TPCDS_PUBLIC_ROOT}/web_sales",
    properties=_CSV_PROPERTIES,
)

# Applied in this order.
TPCDS_CATALOG: tuple[TableDefinition, ...] = (
    CUSTOMER,
    DATE_DIM,
    PREPARED_CUSTOMER,
    PREPARED_WEB_SALES,
    TIME_DIM,
    WEB_SALES,
)

# Subdirectories of the dataset archive the prepared tables read from.
REQUIRED_DATASET_DIRS: tuple[str, ...] = ("prepared_customer", "prepared_web_sales")
