"""Resource right-sizing and cost estimation."""