"""
数据流分层架构
  Layer 1 – Acquisition  : 数据获取（CoinGecko / Coin Metrics / FRED）
  Layer 2 – Cache        : 键值缓存（Redis → 文件），按写入时间判断有效期
  Layer 3 – Processing   : 价格序列清洗与周线重采样
  Layer 4 – Analysis     : 市场健康指标计算
  Layer 5 – Presentation : 阈值分级与看板文本
"""
