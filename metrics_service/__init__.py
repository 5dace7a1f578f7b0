"""
Bitcoin 市场健康指标服务
轮询公开行情 API，计算市场健康指标并按时间窗口缓存，提供 HTTP 接口与看板页面

架构分层：
  数据获取层 (Acquisition)   → 从 CoinGecko / Coin Metrics / FRED 拉取原始数据
  缓存层     (Cache)         → Redis / 文件 / 内存 键值存储，按写入时间判断过期
  处理层     (Processing)    → 价格序列标准化、周线重采样
  分析层     (Analysis)      → Sharpe / RSI / Mayer / Puell / MVRV / NUPL 等指标计算
  展示层     (Presentation)  → 阈值分级、颜色映射、文本格式化
"""

__version__ = "1.0.0"
