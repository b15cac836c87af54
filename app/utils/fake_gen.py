import random
from faker import Faker
from faker.providers import BaseProvider


class NexusProvider(BaseProvider):
    """
    NEXUS 专用数据生成器
    生成商品、供应商等演示数据的专有名词
    """

    # 商品前缀
    product_prefixes = [
        '量子', '纳米', '光子', '聚变', '全息', '超导', '高能', '脉冲', '相位', '等离子'
    ]

    # 商品后缀
    product_suffixes = [
        '计算终端', '推进器', '存储晶体', '传感器', '动力核心',
        '生物芯片', '机械臂', '控制中枢', '转换器', '装甲片'
    ]

    # 供应商后缀
    company_suffixes = [
        '重工', '动力', '生物科技', '工业', '系统', '网络', '联合体'
    ]

    def tech_product_name(self):
        """生成商品名"""
        return f"{self.random_element(self.product_prefixes)}{self.random_element(self.product_suffixes)}"

    def supplier_name(self):
        """生成供应商名"""
        prefix = self.generator.last_name()  # 使用 Faker 内置的姓氏作为公司名
        return f"{prefix}{self.random_element(self.company_suffixes)}"

    def sku_code(self, index):
        return f"SKU-{random.randint(100, 999)}-{index:05d}"


# 初始化 Faker 并添加自定义 Provider
fake = Faker('zh_CN')
fake.add_provider(NexusProvider)
